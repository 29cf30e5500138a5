"""
Collect transactions from every registered source
"""

from typing import List, Dict, Any
from ingestion.base import TransactionFetcher
from schemas.transaction import Transaction
from core.exceptions import EndOfDataError
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 100


class TransactionCollector:
    """
    Page through sources and concatenate their transactions.

    Failure isolation:
    - an empty page or EndOfDataError ends a source normally
    - any other error ends that source early; pages already read are kept
    - a failing source never stops the others
    """

    def __init__(self, max_pages: int = DEFAULT_MAX_PAGES):
        self.max_pages = max_pages

    async def fetch_all_from_source(
        self,
        fetcher: TransactionFetcher,
        source_name: str
    ) -> List[Transaction]:
        """Read pages 1..max_pages in order until the source runs dry."""
        transactions: List[Transaction] = []

        for page in range(1, self.max_pages + 1):
            try:
                batch = await fetcher.fetch(page)
            except EndOfDataError:
                logger.info(f"[{source_name}] end of data at page {page}")
                break
            except Exception as e:
                logger.error(
                    f"[{source_name}] fetch failed on page {page}, "
                    f"keeping {len(transactions)} transactions: {e}",
                    exc_info=True,
                    extra={"context": {
                        "source_name": source_name,
                        "page": page,
                        "collected": len(transactions),
                        "error": str(e)
                    }}
                )
                break

            if not batch:
                break

            transactions.extend(batch)
        else:
            logger.warning(f"[{source_name}] stopped at max_pages={self.max_pages}")

        logger.info(f"[{source_name}] collected {len(transactions)} transactions")
        return transactions

    async def fetch_from_multiple_sources(self, sources: List[Dict[str, Any]]) -> List[Transaction]:
        """
        Collect sources one after another.

        Args:
            sources: [{"fetcher": TransactionFetcher, "name": str}, ...]

        Returns:
            Transactions in source order, then page order
        """
        all_transactions: List[Transaction] = []

        for source in sources:
            name = source["name"]
            try:
                all_transactions.extend(
                    await self.fetch_all_from_source(source["fetcher"], name)
                )
            except Exception as e:
                logger.error(
                    f"[{name}] source skipped: {e}",
                    exc_info=True,
                    extra={"context": {"source_name": name, "error": str(e)}}
                )

        logger.info(
            f"Collected {len(all_transactions)} transactions from {len(sources)} sources"
        )
        return all_transactions
