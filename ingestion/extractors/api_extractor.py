"""
HTTP transaction sources with status mapping and bounded retry.

This module provides:
- HTTPSource: shared request plumbing (client handling, status mapping,
  transport error translation, retry policy)
- HTTPTransactionFetcher: paginated TransactionFetcher template over HTTP
- JSONPageFetcher: source A, GET /transaction?page=N, camelCase JSON
- PostedPageFetcher: source C, POST /transaction {page}, UPPER_SNAKE JSON

Status mapping:
    502 -> UpstreamOverloadError (retried)
    400, 404 -> EndOfDataError (normal end of pagination)
    401, 403 -> AuthenticationError
    other >= 400 -> APIExtractionError
    transport failures and timeouts -> NetworkError
"""

import httpx
from abc import abstractmethod
from typing import List, Any, Optional
from ingestion.base import TransactionFetcher, validate_page
from ingestion.retry import RetryPolicy
from ingestion.transformers.normalizer import (
    TransactionNormalizer,
    CAMEL_CASE_FIELDS,
    UPPER_SNAKE_FIELDS,
)
from schemas.transaction import Transaction
from core.config import settings
from core.exceptions import (
    BatchException,
    APIExtractionError,
    UpstreamOverloadError,
    NetworkError,
    AuthenticationError,
    EndOfDataError,
)
import logging

logger = logging.getLogger(__name__)


class HTTPSource:
    """
    Request plumbing shared by every HTTP upstream.

    A shared ``httpx.AsyncClient`` can be injected; without one a client is
    opened per request.

    Attributes:
        base_url: Upstream base URL
        source_name: Name used in logs and error context
        retry_policy: RetryPolicy applied to every request
        timeout: Request timeout in seconds (default: 2.0)
    """

    def __init__(
        self,
        base_url: str,
        source_name: str,
        max_retries: int = 0,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.source_name = source_name
        self.retry_policy = RetryPolicy(
            max_retries,
            settings.RETRY_DELAY if retry_delay is None else retry_delay
        )
        self.timeout = settings.API_TIMEOUT if timeout is None else timeout
        self.client = client

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _send(self, method: str, url: str, page: int, **kwargs) -> httpx.Response:
        """Single attempt. Transport failures become NetworkError."""
        try:
            if self.client is not None:
                response = await self.client.request(method, url, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {url}",
                context={"url": url, "page": page, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network error for {url}",
                context={"url": url, "page": page},
                original_exception=e
            )

        self._check_status(response, url, page)
        return response

    def _check_status(self, response: httpx.Response, url: str, page: int) -> None:
        status = response.status_code
        if status < 400:
            return

        context = {
            "url": url,
            "page": page,
            "status_code": status,
            "source_name": self.source_name,
        }

        if status == 502:
            raise UpstreamOverloadError(f"Upstream overloaded: {url}", context=context)
        if status in (400, 404):
            raise EndOfDataError(f"No more data at {url}", context=context)
        if status in (401, 403):
            raise AuthenticationError(f"Authentication failed for {url}", context=context)

        context["response_body"] = response.text[:500]
        raise APIExtractionError(f"HTTP {status} from {url}", context=context)

    async def _request_with_retry(self, method: str, url: str, page: int, **kwargs) -> httpx.Response:
        return await self.retry_policy(lambda: self._send(method, url, page, **kwargs))

    def _parse_json(self, response: httpx.Response, url: str, page: int) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise APIExtractionError(
                "Failed to parse JSON response",
                context={
                    "url": url,
                    "page": page,
                    "source_name": self.source_name,
                    "response_body": response.text[:500]
                },
                original_exception=e
            )

    def _read_list(self, data: Any, key: str, url: str, page: int) -> List[Any]:
        records = data.get(key) if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise APIExtractionError(
                f"Response has no '{key}' list",
                context={"url": url, "page": page, "source_name": self.source_name}
            )
        return records

    def _log_failure(self, error: Exception, url: str, page: int, **context) -> None:
        if isinstance(error, EndOfDataError):
            logger.info(f"{self.source_name}: end of data at page {page}")
            return

        logger.error(
            f"{self.source_name}.fetch error: {error}",
            exc_info=True,
            extra={"context": {
                "url": url,
                "page": page,
                "error": getattr(error, "message", str(error)),
                **context
            }}
        )


class HTTPTransactionFetcher(HTTPSource, TransactionFetcher):
    """Paginated HTTP source returning canonical transactions"""

    path = "/transaction"

    @abstractmethod
    async def _request(self, url: str, page: int) -> httpx.Response:
        """Issue the page request (with retry)."""
        pass

    @abstractmethod
    async def parse_response(self, response: httpx.Response, url: str, page: int) -> List[Transaction]:
        """Turn one response into transactions."""
        pass

    async def fetch(self, page: int) -> List[Transaction]:
        validate_page(page)
        url = self.url_for(self.path)

        try:
            response = await self._request(url, page)
            transactions = await self.parse_response(response, url, page)
        except BatchException as e:
            self._log_failure(e, url, page)
            raise

        logger.debug(f"{self.source_name}: {len(transactions)} transactions on page {page}")
        return transactions


class JSONPageFetcher(HTTPTransactionFetcher):
    """
    Source A.

    GET /transaction?page=N
    Response: {"list": [{amount, balance, cancelYn, date, storeId, transactionId}], "pageInfo": {...}}
    """

    def __init__(self, base_url: str = None, source_name: str = "source_a", **kwargs):
        kwargs.setdefault("max_retries", settings.SOURCE_A_MAX_RETRIES)
        super().__init__(base_url or settings.SOURCE_A_URL, source_name, **kwargs)
        self.normalizer = TransactionNormalizer(source_name, CAMEL_CASE_FIELDS)

    async def _request(self, url: str, page: int) -> httpx.Response:
        return await self._request_with_retry("GET", url, page, params={"page": page})

    async def parse_response(self, response: httpx.Response, url: str, page: int) -> List[Transaction]:
        data = self._parse_json(response, url, page)
        return self.normalizer.normalize_many(self._read_list(data, "list", url, page))


class PostedPageFetcher(HTTPTransactionFetcher):
    """
    Source C.

    POST /transaction {"page": N}
    Response: {"transactionList": [{AMOUNT, BALANCE, CANCEL_YN, DATE, STORE_ID, TRANSACTION_ID}], "page": N}
    """

    def __init__(self, base_url: str = None, source_name: str = "source_c", **kwargs):
        kwargs.setdefault("max_retries", settings.SOURCE_C_MAX_RETRIES)
        super().__init__(base_url or settings.SOURCE_C_URL, source_name, **kwargs)
        self.normalizer = TransactionNormalizer(source_name, UPPER_SNAKE_FIELDS)

    async def _request(self, url: str, page: int) -> httpx.Response:
        return await self._request_with_retry("POST", url, page, json={"page": page})

    async def parse_response(self, response: httpx.Response, url: str, page: int) -> List[Transaction]:
        data = self._parse_json(response, url, page)
        return self.normalizer.normalize_many(self._read_list(data, "transactionList", url, page))
