"""
Unit tests for the key-value store and batch repository
"""

import pytest
from core.database import create_engine, create_session_maker
from ingestion.loaders.key_value_store import SQLKeyValueStore
from ingestion.loaders.batch_repository import (
    BatchRepository,
    MERGE_TRANSACTIONS_KEY,
    PROCESSED_IDS_KEY,
)
from schemas.transaction import StoreTransaction, create_merge_transaction
from core.exceptions import PersistenceError


def merged(tx, product_id="P-1"):
    return create_merge_transaction(
        tx,
        StoreTransaction(
            store_id=tx.store_id,
            transaction_id=tx.transaction_id,
            product_id=product_id,
            date=tx.date,
        ),
    )


class TestSQLKeyValueStore:
    """Test the SQL-backed store"""

    @pytest.mark.asyncio
    async def test_missing_key_reads_as_none(self, sqlite_store):
        assert await sqlite_store.get("nothing-here") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, sqlite_store):
        await sqlite_store.put("ids", ["tx-1", "tx-2"])

        assert await sqlite_store.get("ids") == ["tx-1", "tx-2"]

    @pytest.mark.asyncio
    async def test_put_replaces_whole_value(self, sqlite_store):
        await sqlite_store.put("doc", [{"a": 1}])
        await sqlite_store.put("doc", [{"b": 2}])

        assert await sqlite_store.get("doc") == [{"b": 2}]

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_store):
        await sqlite_store.put("doc", [1])
        await sqlite_store.delete("doc")

        assert await sqlite_store.get("doc") is None

    @pytest.mark.asyncio
    async def test_ping(self, sqlite_store):
        assert await sqlite_store.ping() is True

    @pytest.mark.asyncio
    async def test_database_errors_become_persistence_errors(self, tmp_path):
        # No init_models: the table does not exist
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        store = SQLKeyValueStore(create_session_maker(engine))

        try:
            with pytest.raises(PersistenceError) as exc_info:
                await store.get("ids")
            assert exc_info.value.context["operation"] == "get"
            assert exc_info.value.context["key"] == "ids"

            with pytest.raises(PersistenceError):
                await store.put("ids", [])

            assert await store.ping() is False
        finally:
            await engine.dispose()


class TestBatchRepositoryDedup:
    """Test duplicate filtering"""

    def test_filter_duplicates_splits_by_processed_ids(self, make_transaction):
        split = BatchRepository.filter_duplicates(
            [make_transaction("tx-1"), make_transaction("tx-2")],
            ["tx-1"],
        )

        assert [t.transaction_id for t in split.new] == ["tx-2"]
        assert [t.transaction_id for t in split.duplicate] == ["tx-1"]

    def test_filter_duplicates_with_no_history(self, sample_transactions):
        split = BatchRepository.filter_duplicates(sample_transactions, [])

        assert split.new == sample_transactions
        assert split.duplicate == []

    def test_drop_repeated_keeps_first_occurrence(self, make_transaction):
        first = make_transaction("tx-1", amount=1)
        repeat = make_transaction("tx-1", amount=2)

        unique, repeated = BatchRepository.drop_repeated([first, make_transaction("tx-2"), repeat])

        assert [t.transaction_id for t in unique] == ["tx-1", "tx-2"]
        assert unique[0].amount == 1
        assert repeated == [repeat]


class TestBatchRepositoryPersistence:
    """Test read-modify-write of persisted state"""

    @pytest.mark.asyncio
    async def test_processed_ids_start_empty(self, memory_store):
        assert await BatchRepository(memory_store).get_processed_ids() == []

    @pytest.mark.asyncio
    async def test_save_processed_ids_dedups_input(self, memory_store):
        repository = BatchRepository(memory_store)

        added = await repository.save_processed_ids(["tx-1", "tx-2", "tx-1"])

        assert added == 2
        assert memory_store.data[PROCESSED_IDS_KEY] == ["tx-1", "tx-2"]

    @pytest.mark.asyncio
    async def test_save_processed_ids_unions_with_existing(self, memory_store):
        memory_store.data[PROCESSED_IDS_KEY] = ["tx-1"]
        repository = BatchRepository(memory_store)

        added = await repository.save_processed_ids(["tx-1", "tx-3"])

        assert added == 1
        assert await repository.get_processed_ids() == ["tx-1", "tx-3"]

    @pytest.mark.asyncio
    async def test_save_merge_transactions_appends(self, memory_store, make_transaction):
        repository = BatchRepository(memory_store)

        await repository.save_merge_transactions([merged(make_transaction("tx-1"))])
        await repository.save_merge_transactions([merged(make_transaction("tx-2"), "P-2")])

        stored = memory_store.data[MERGE_TRANSACTIONS_KEY]
        assert [r["transactionId"] for r in stored] == ["tx-1", "tx-2"]
        assert stored[1]["productId"] == "P-2"

        records = await repository.get_all_merge_transactions()
        assert [r.product_id for r in records] == ["P-1", "P-2"]

    @pytest.mark.asyncio
    async def test_stored_format_uses_wire_field_names(self, memory_store, make_transaction):
        await BatchRepository(memory_store).save_merge_transactions([merged(make_transaction("tx-1"))])

        assert memory_store.data[MERGE_TRANSACTIONS_KEY] == [{
            "transactionId": "tx-1",
            "storeId": "store-1",
            "date": "2021-01-01",
            "amount": 1000,
            "balance": 500,
            "cancelYn": "N",
            "productId": "P-1",
        }]

    @pytest.mark.asyncio
    async def test_store_errors_are_wrapped(self, memory_store):
        memory_store.fail_on_put = RuntimeError("disk full")

        with pytest.raises(PersistenceError) as exc_info:
            await BatchRepository(memory_store).save_processed_ids(["tx-1"])

        assert exc_info.value.context["key"] == PROCESSED_IDS_KEY
        assert isinstance(exc_info.value.original_exception, RuntimeError)

    @pytest.mark.asyncio
    async def test_persistence_errors_pass_through_unchanged(self, memory_store):
        original = PersistenceError("boom", context={"operation": "get", "key": "x"})
        memory_store.fail_on_get = original

        with pytest.raises(PersistenceError) as exc_info:
            await BatchRepository(memory_store).get_processed_ids()

        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_non_list_value_is_rejected(self, memory_store):
        memory_store.data[PROCESSED_IDS_KEY] = {"tx-1": True}

        with pytest.raises(PersistenceError):
            await BatchRepository(memory_store).get_processed_ids()

    @pytest.mark.asyncio
    async def test_round_trip_through_sqlite(self, sqlite_store, make_transaction):
        repository = BatchRepository(sqlite_store)

        await repository.save_merge_transactions([merged(make_transaction("tx-1"))])
        await repository.save_processed_ids(["tx-1"])

        assert await repository.get_processed_ids() == ["tx-1"]
        assert [r.transaction_id for r in await repository.get_all_merge_transactions()] == ["tx-1"]
