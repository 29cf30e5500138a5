"""
Secondary store-transaction source keyed by (store, date)
"""

import httpx
from typing import List, Optional
from pydantic import ValidationError
from ingestion.base import validate_page
from ingestion.extractors.api_extractor import HTTPSource
from schemas.transaction import StoreTransaction
from core.config import settings
from core.exceptions import BatchException, NormalizationError
import logging

logger = logging.getLogger(__name__)


class StoreTransactionFetcher(HTTPSource):
    """
    POST /store-transaction/{storeId} {"page": N, "date": "yyyy-MM-dd"}
    Response: {"list": [{storeId, transactionId, productId}], "pageInfo": {...}}

    The lookup date is stamped onto every returned record.
    """

    def __init__(
        self,
        base_url: str = None,
        source_name: str = "store_transaction",
        client: Optional[httpx.AsyncClient] = None,
        **kwargs
    ):
        kwargs.setdefault("max_retries", settings.STORE_TRANSACTION_MAX_RETRIES)
        super().__init__(base_url or settings.STORE_TRANSACTION_URL, source_name, client=client, **kwargs)

    async def fetch(self, store_id: str, date: str, page: int) -> List[StoreTransaction]:
        validate_page(page)
        url = self.url_for(f"/store-transaction/{store_id}")

        try:
            response = await self._request_with_retry(
                "POST", url, page, json={"page": page, "date": date}
            )
            data = self._parse_json(response, url, page)
            items = self._read_list(data, "list", url, page)
            return [self._to_store_transaction(item, date) for item in items]
        except BatchException as e:
            self._log_failure(e, url, page, store_id=store_id, date=date)
            raise

    def _to_store_transaction(self, item, date: str) -> StoreTransaction:
        try:
            return StoreTransaction(
                store_id=item["storeId"],
                transaction_id=item["transactionId"],
                product_id=item["productId"],
                date=date,
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise NormalizationError(
                "Invalid store transaction record",
                context={"source_name": self.source_name, "record": repr(item)[:200]},
                original_exception=e
            )
