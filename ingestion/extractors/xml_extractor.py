"""
Markup (XML) transaction source parsed with BeautifulSoup
"""

import asyncio
import httpx
from bs4 import BeautifulSoup
from typing import List, Dict
from ingestion.extractors.api_extractor import HTTPTransactionFetcher
from ingestion.transformers.normalizer import TransactionNormalizer, CAMEL_CASE_FIELDS
from schemas.transaction import Transaction
from core.config import settings
from core.exceptions import MarkupExtractionError
import logging

logger = logging.getLogger(__name__)

TRANSACTION_TAGS = ("amount", "balance", "cancelYn", "date", "storeId", "transactionId")


def parse_transactions_markup(body: str, url: str = "", page: int = None) -> List[Dict[str, str]]:
    """
    Extract the raw fields of every <transaction> block.

    Expected document:
        <result>
          <list>
            <transaction>
              <amount>44906</amount> ... <transactionId>...</transactionId>
            </transaction>
          </list>
          <hasNextPage>false</hasNextPage>
        </result>

    An empty body means no data. Values are whitespace-stripped. A block with
    a missing or empty tag is logged with its index and tag and skipped; the
    rest of the page is kept.

    Raises:
        MarkupExtractionError: no <result> root
    """
    if not body or not body.strip():
        return []

    soup = BeautifulSoup(body, "xml")
    root = soup.find("result", recursive=False)
    if root is None:
        raise MarkupExtractionError(
            "Document has no <result> root",
            context={"url": url, "page": page, "body": body[:200]}
        )

    records = []
    for index, block in enumerate(root.find_all("transaction")):
        try:
            records.append(_read_block(block, index, url, page))
        except MarkupExtractionError as e:
            logger.error(
                f"Skipping malformed transaction block: {e.message}",
                extra={"context": e.context}
            )

    return records


def _read_block(block, index: int, url: str, page: int) -> Dict[str, str]:
    record = {}
    for tag in TRANSACTION_TAGS:
        element = block.find(tag, recursive=False)
        value = element.get_text(strip=True) if element is not None else ""
        if not value:
            raise MarkupExtractionError(
                f"Transaction #{index} has a missing or empty <{tag}>",
                context={"url": url, "page": page, "record_index": index, "tag": tag}
            )
        record[tag] = value
    return record


class XMLPageFetcher(HTTPTransactionFetcher):
    """
    Source B.

    GET /transaction?page=N
    Response: markup document, one <transaction> block per record
    """

    def __init__(self, base_url: str = None, source_name: str = "source_b", **kwargs):
        kwargs.setdefault("max_retries", settings.SOURCE_B_MAX_RETRIES)
        super().__init__(base_url or settings.SOURCE_B_URL, source_name, **kwargs)
        self.normalizer = TransactionNormalizer(source_name, CAMEL_CASE_FIELDS)

    async def _request(self, url: str, page: int) -> httpx.Response:
        return await self._request_with_retry("GET", url, page, params={"page": page})

    async def parse_response(self, response: httpx.Response, url: str, page: int) -> List[Transaction]:
        # Parse in thread pool (BeautifulSoup is CPU-bound)
        records = await asyncio.to_thread(parse_transactions_markup, response.text, url, page)
        return self.normalizer.normalize_many(records)
