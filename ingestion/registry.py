"""
Registry of transaction sources, built once at startup
"""

import httpx
from typing import List, Iterable, Optional
from ingestion.base import FetcherDefinition
from ingestion.extractors.api_extractor import JSONPageFetcher, PostedPageFetcher
from ingestion.extractors.xml_extractor import XMLPageFetcher
from ingestion.extractors.csv_extractor import CSVTransactionFetcher
from core.config import Settings, settings as default_settings
import logging

logger = logging.getLogger(__name__)


def select_fetchers(definitions: Iterable[FetcherDefinition]) -> List[FetcherDefinition]:
    """Enabled definitions, ordered by priority (stable for equal priorities)."""
    return sorted(
        (d for d in definitions if d.enabled),
        key=lambda d: d.priority
    )


def build_fetcher_registry(
    client: Optional[httpx.AsyncClient] = None,
    settings: Settings = None
) -> List[FetcherDefinition]:
    """
    Build the ordered source list.

    Sources named in ``DISABLED_SOURCES`` are left out. Collection runs in
    the returned order.
    """
    settings = settings or default_settings
    disabled = set(settings.DISABLED_SOURCES)

    definitions = [
        FetcherDefinition(
            name="source_a",
            fetcher=JSONPageFetcher(
                settings.SOURCE_A_URL,
                max_retries=settings.SOURCE_A_MAX_RETRIES,
                retry_delay=settings.RETRY_DELAY,
                timeout=settings.API_TIMEOUT,
                client=client,
            ),
            priority=0,
        ),
        FetcherDefinition(
            name="source_b",
            fetcher=XMLPageFetcher(
                settings.SOURCE_B_URL,
                max_retries=settings.SOURCE_B_MAX_RETRIES,
                retry_delay=settings.RETRY_DELAY,
                timeout=settings.API_TIMEOUT,
                client=client,
            ),
            priority=1,
        ),
        FetcherDefinition(
            name="source_c",
            fetcher=PostedPageFetcher(
                settings.SOURCE_C_URL,
                max_retries=settings.SOURCE_C_MAX_RETRIES,
                retry_delay=settings.RETRY_DELAY,
                timeout=settings.API_TIMEOUT,
                client=client,
            ),
            priority=2,
        ),
        FetcherDefinition(
            name="csv",
            fetcher=CSVTransactionFetcher(settings.CSV_TRANSACTION_PATH),
            priority=3,
        ),
    ]

    for definition in definitions:
        if definition.name in disabled:
            definition.enabled = False

    registry = select_fetchers(definitions)
    logger.info(f"Registered sources: {[d.name for d in registry]}")
    return registry
