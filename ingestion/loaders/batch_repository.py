"""
Persist merge transactions and the processed-id set (idempotency)
"""

from typing import Iterable, List, Tuple
from ingestion.loaders.key_value_store import KeyValueStore
from schemas.transaction import Transaction, MergeTransaction, DuplicateSplit
from core.exceptions import PersistenceError
import logging

logger = logging.getLogger(__name__)

MERGE_TRANSACTIONS_KEY = "merge_transactions"
PROCESSED_IDS_KEY = "processed_transaction_ids"


class BatchRepository:
    """
    Read-modify-write access to the batch's persisted state.

    Ensures:
    - The processed-id set only grows and never holds duplicates
    - Re-running with the same upstream data adds nothing

    Writes are not atomic across keys; the FILE_WRITE gate keeps a single
    writer.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def filter_duplicates(
        transactions: List[Transaction],
        processed_ids: Iterable[str]
    ) -> DuplicateSplit:
        """Partition ``transactions`` by membership in ``processed_ids``."""
        seen = set(processed_ids)
        split = DuplicateSplit()

        for tx in transactions:
            if tx.transaction_id in seen:
                split.duplicate.append(tx)
            else:
                split.new.append(tx)

        return split

    @staticmethod
    def drop_repeated(transactions: List[Transaction]) -> Tuple[List[Transaction], List[Transaction]]:
        """Keep the first occurrence of each transaction id. Returns (unique, repeated)."""
        unique: List[Transaction] = []
        repeated: List[Transaction] = []
        seen = set()

        for tx in transactions:
            if tx.transaction_id in seen:
                repeated.append(tx)
            else:
                seen.add(tx.transaction_id)
                unique.append(tx)

        return unique, repeated

    async def get_processed_ids(self) -> List[str]:
        return await self._read(PROCESSED_IDS_KEY)

    async def save_processed_ids(self, new_ids: Iterable[str]) -> int:
        """
        Union ``new_ids`` into the stored set, preserving first-seen order.

        Returns:
            Number of ids actually added
        """
        existing = await self._read(PROCESSED_IDS_KEY)
        merged = list(dict.fromkeys([*existing, *new_ids]))
        added = len(merged) - len(existing)

        await self._write(PROCESSED_IDS_KEY, merged)
        logger.info(f"Processed ids: {added} added, {len(merged)} total")
        return added

    async def save_merge_transactions(self, records: List[MergeTransaction]) -> int:
        existing = await self._read(MERGE_TRANSACTIONS_KEY)
        updated = existing + [r.model_dump(by_alias=True) for r in records]

        await self._write(MERGE_TRANSACTIONS_KEY, updated)
        logger.info(f"Merge transactions: {len(records)} appended, {len(updated)} total")
        return len(records)

    async def get_all_merge_transactions(self) -> List[MergeTransaction]:
        return [MergeTransaction.model_validate(r) for r in await self._read(MERGE_TRANSACTIONS_KEY)]

    async def _read(self, key: str) -> list:
        try:
            value = await self.store.get(key)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to read {key}",
                context={"operation": "get", "key": key},
                original_exception=e
            )

        if value is None:
            return []
        if not isinstance(value, list):
            raise PersistenceError(
                f"Stored value for {key} is not a list",
                context={"operation": "get", "key": key, "type": type(value).__name__}
            )
        return value

    async def _write(self, key: str, value: list) -> None:
        try:
            await self.store.put(key, value)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to write {key}",
                context={"operation": "put", "key": key},
                original_exception=e
            )
