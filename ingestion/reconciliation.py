"""
Match transactions with their store transactions to attach product ids.

Store transactions are prefetched once per distinct (store_id, date) pair,
in concurrent groups, and cached for the duration of one run.
"""

import asyncio
from typing import Dict, List, Optional, Tuple
from ingestion.extractors.store_transaction import StoreTransactionFetcher
from schemas.transaction import (
    Transaction,
    StoreTransaction,
    ReconciliationFailure,
    ReconciliationResult,
    create_merge_transaction,
)
from core.exceptions import EndOfDataError, MergeMismatchError
import logging

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "store transaction not found"

CacheKey = Tuple[str, str]


class ReconciliationEngine:
    """
    Turn transactions into merge transactions.

    Partial failure is the normal case: unmatched transactions are reported
    in ``failed`` and the rest still merge.

    Attributes:
        store_fetcher: Source of store transactions
        concurrency: Keys prefetched at once (default: 10)
        max_pages: Page cap per key (default: 100)
    """

    def __init__(
        self,
        store_fetcher: StoreTransactionFetcher,
        concurrency: int = 10,
        max_pages: int = 100
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.store_fetcher = store_fetcher
        self.concurrency = concurrency
        self.max_pages = max_pages
        self._cache: Dict[CacheKey, List[StoreTransaction]] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def reconcile(self, transactions: List[Transaction]) -> ReconciliationResult:
        self._cache.clear()

        keys = list(dict.fromkeys((tx.store_id, tx.date) for tx in transactions))
        await self._prefetch(keys)

        result = ReconciliationResult()
        for tx in transactions:
            store_tx = self.find_store_transaction(tx)
            if store_tx is None:
                result.failed.append(
                    ReconciliationFailure(transaction_id=tx.transaction_id, reason=NOT_FOUND_REASON)
                )
                continue

            try:
                result.successful.append(create_merge_transaction(tx, store_tx))
            except MergeMismatchError as e:
                result.failed.append(
                    ReconciliationFailure(transaction_id=tx.transaction_id, reason=e.message)
                )

        logger.info(
            f"Reconciliation complete: total={len(transactions)}, "
            f"success={len(result.successful)}, failed={len(result.failed)}",
            extra={"context": {
                "total": len(transactions),
                "success": len(result.successful),
                "failed": len(result.failed),
                "store_date_pairs": len(keys)
            }}
        )
        return result

    def find_store_transaction(self, tx: Transaction) -> Optional[StoreTransaction]:
        """Look up ``tx`` in the prefetched data. None when absent."""
        for store_tx in self._cache.get((tx.store_id, tx.date), []):
            if store_tx.transaction_id == tx.transaction_id:
                return store_tx
        return None

    async def _prefetch(self, keys: List[CacheKey]) -> None:
        for start in range(0, len(keys), self.concurrency):
            group = keys[start:start + self.concurrency]
            results = await asyncio.gather(*(self._fetch_all_pages(*key) for key in group))
            for key, store_transactions in zip(group, results):
                self._cache[key] = store_transactions

        logger.info(f"Prefetched store transactions for {len(keys)} (store, date) pairs")

    async def _fetch_all_pages(self, store_id: str, date: str) -> List[StoreTransaction]:
        """All pages for one key. Any failure other than end-of-data caches nothing."""
        collected: List[StoreTransaction] = []

        try:
            for page in range(1, self.max_pages + 1):
                try:
                    batch = await self.store_fetcher.fetch(store_id, date, page)
                except EndOfDataError:
                    break
                if not batch:
                    break
                collected.extend(batch)
        except Exception as e:
            logger.warning(
                f"Store transaction prefetch failed for store={store_id} date={date}: {e}",
                extra={"context": {"store_id": store_id, "date": date, "error": str(e)}}
            )
            return []

        return collected
