"""
Abstract base class for paginated transaction sources
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List
from core.exceptions import InvalidPageError
from schemas.transaction import Transaction
import logging

logger = logging.getLogger(__name__)


def validate_page(page) -> None:
    """
    Reject anything that is not an integer page number >= 1.

    Raises:
        InvalidPageError: page is not an int (bool excluded) or is below 1
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise InvalidPageError(
            "page must be integer >= 1",
            context={"page": repr(page)}
        )


class TransactionFetcher(ABC):
    """
    Abstract base class for all transaction sources.

    Contract:
    - ``fetch(page)`` returns the canonical transactions on that page
    - pages start at 1; an empty list means there is no more data
    - invalid page numbers fail before any I/O
    """

    source_name: str = "unknown"

    @abstractmethod
    async def fetch(self, page: int) -> List[Transaction]:
        """
        Fetch one page of transactions.

        Args:
            page: Page number (1-indexed)

        Returns:
            List of Transaction (empty when the source is exhausted)
        """
        pass


@dataclass
class FetcherDefinition:
    """A named entry of the fetcher registry"""
    name: str
    fetcher: TransactionFetcher
    enabled: bool = True
    priority: int = 0
