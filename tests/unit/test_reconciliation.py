"""
Unit tests for the reconciliation engine
"""

import asyncio
import pytest
from unittest.mock import AsyncMock
from ingestion.reconciliation import ReconciliationEngine, NOT_FOUND_REASON
from schemas.transaction import StoreTransaction
from core.exceptions import EndOfDataError, NetworkError


def store_tx(transaction_id, store_id="store-1", date="2021-01-01", product_id=None):
    return StoreTransaction(
        store_id=store_id,
        transaction_id=transaction_id,
        product_id=product_id or f"P-{transaction_id}",
        date=date,
    )


def fake_store_fetcher(pages_by_key):
    """
    Store fetcher mock serving ``pages_by_key[(store_id, date)]`` page by page.

    A page entry may be an exception instance. Past the last page it raises
    EndOfDataError like the real upstream.
    """
    async def fetch(store_id, date, page):
        pages = pages_by_key.get((store_id, date), [])
        if page > len(pages):
            raise EndOfDataError("no more pages")
        item = pages[page - 1]
        if isinstance(item, Exception):
            raise item
        return item

    fetcher = AsyncMock()
    fetcher.fetch = AsyncMock(side_effect=fetch)
    return fetcher


class TestReconciliationEngine:
    """Test matching, prefetch and failure reporting"""

    @pytest.mark.asyncio
    async def test_all_matched(self, sample_transactions):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-1")]],
            ("store-1", "2021-01-02"): [[store_tx("tx-2", date="2021-01-02")]],
            ("store-2", "2021-01-01"): [[store_tx("tx-3", store_id="store-2")]],
        })

        result = await ReconciliationEngine(fetcher).reconcile(sample_transactions)

        assert [m.transaction_id for m in result.successful] == ["tx-1", "tx-2", "tx-3"]
        assert [m.product_id for m in result.successful] == ["P-tx-1", "P-tx-2", "P-tx-3"]
        assert result.failed == []

    @pytest.mark.asyncio
    async def test_unmatched_transaction_is_reported(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-1")]],
        })

        result = await ReconciliationEngine(fetcher).reconcile([
            make_transaction("tx-1"),
            make_transaction("tx-missing"),
        ])

        assert [m.transaction_id for m in result.successful] == ["tx-1"]
        assert len(result.failed) == 1
        assert result.failed[0].transaction_id == "tx-missing"
        assert result.failed[0].reason == NOT_FOUND_REASON

    @pytest.mark.asyncio
    async def test_one_fetch_sequence_per_store_date_pair(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-1"), store_tx("tx-2")]],
        })

        result = await ReconciliationEngine(fetcher).reconcile([
            make_transaction("tx-1"),
            make_transaction("tx-2"),
        ])

        assert len(result.successful) == 2
        # page 1 then the end-of-data request for page 2
        assert fetcher.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_reads_every_page_of_a_key(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-1")], [store_tx("tx-2")], []],
        })

        result = await ReconciliationEngine(fetcher).reconcile([make_transaction("tx-2")])

        assert [m.product_id for m in result.successful] == ["P-tx-2"]

    @pytest.mark.asyncio
    async def test_prefetch_failure_marks_key_as_unmatched(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [NetworkError("down")],
            ("store-2", "2021-01-01"): [[store_tx("tx-2", store_id="store-2")]],
        })

        result = await ReconciliationEngine(fetcher).reconcile([
            make_transaction("tx-1"),
            make_transaction("tx-2", storeId="store-2"),
        ])

        assert [m.transaction_id for m in result.successful] == ["tx-2"]
        assert [f.transaction_id for f in result.failed] == ["tx-1"]

    @pytest.mark.asyncio
    async def test_failure_after_first_page_discards_partial_pages(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-1")], NetworkError("down")],
        })

        result = await ReconciliationEngine(fetcher).reconcile([make_transaction("tx-1")])

        assert result.successful == []
        assert result.failed[0].reason == NOT_FOUND_REASON

    @pytest.mark.asyncio
    async def test_preserves_input_order(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-a"), store_tx("tx-c")]],
            ("store-2", "2021-01-01"): [[store_tx("tx-b", store_id="store-2")]],
        })

        result = await ReconciliationEngine(fetcher).reconcile([
            make_transaction("tx-a"),
            make_transaction("tx-b", storeId="store-2"),
            make_transaction("tx-c"),
        ])

        assert [m.transaction_id for m in result.successful] == ["tx-a", "tx-b", "tx-c"]

    @pytest.mark.asyncio
    async def test_prefetch_is_bounded_by_concurrency(self, make_transaction):
        in_flight = 0
        peak = 0

        async def fetch(store_id, date, page):
            nonlocal in_flight, peak
            if page > 1:
                raise EndOfDataError("done")
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return [store_tx(f"tx-{store_id}", store_id=store_id)]

        fetcher = AsyncMock()
        fetcher.fetch = AsyncMock(side_effect=fetch)
        transactions = [
            make_transaction(f"tx-s{i}", storeId=f"s{i}") for i in range(7)
        ]

        result = await ReconciliationEngine(fetcher, concurrency=3).reconcile(transactions)

        assert len(result.successful) == 7
        assert 1 < peak <= 3

    @pytest.mark.asyncio
    async def test_cache_is_rebuilt_each_run(self, make_transaction):
        fetcher = fake_store_fetcher({
            ("store-1", "2021-01-01"): [[store_tx("tx-1")]],
            ("store-2", "2021-01-01"): [[store_tx("tx-2", store_id="store-2")]],
        })
        engine = ReconciliationEngine(fetcher)

        await engine.reconcile([make_transaction("tx-1")])
        assert engine.cache_size == 1

        await engine.reconcile([make_transaction("tx-2", storeId="store-2")])
        assert engine.cache_size == 1

    @pytest.mark.asyncio
    async def test_empty_input(self):
        fetcher = fake_store_fetcher({})

        result = await ReconciliationEngine(fetcher).reconcile([])

        assert result.successful == []
        assert result.failed == []
        fetcher.fetch.assert_not_awaited()

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            ReconciliationEngine(fake_store_fetcher({}), concurrency=0)
