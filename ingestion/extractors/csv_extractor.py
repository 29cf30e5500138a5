"""
CSV file transaction source
"""

import asyncio
import pandas as pd
from typing import List, Dict, Any
from pathlib import Path
from ingestion.base import TransactionFetcher, validate_page
from ingestion.transformers.normalizer import TransactionNormalizer, CAMEL_CASE_FIELDS
from schemas.transaction import Transaction
from core.config import settings
from core.exceptions import CSVExtractionError, BatchException
import logging

logger = logging.getLogger(__name__)


class CSVTransactionFetcher(TransactionFetcher):
    """
    Read transactions from a CSV file.

    The header row gives the field names (camelCase, like source A). The
    whole file is page 1; every later page is empty.
    """

    def __init__(self, file_path: str = None, source_name: str = "csv"):
        self.file_path = Path(file_path or settings.CSV_TRANSACTION_PATH)
        self.source_name = source_name
        self.normalizer = TransactionNormalizer(source_name, CAMEL_CASE_FIELDS)

    def _read_records(self) -> List[Dict[str, Any]]:
        try:
            # All columns as text; the Transaction schema does the typing
            df = pd.read_csv(self.file_path, dtype=str, keep_default_na=False, skip_blank_lines=True)
        except pd.errors.EmptyDataError:
            return []

        df.columns = df.columns.str.strip()
        return df.to_dict(orient="records")

    async def fetch(self, page: int) -> List[Transaction]:
        validate_page(page)
        if page > 1:
            return []

        logger.info(f"Reading CSV from {self.file_path}")

        try:
            # Read off the event loop
            records = await asyncio.to_thread(self._read_records)
            transactions = self.normalizer.normalize_many(records)
        except BatchException as e:
            logger.error(
                f"CSVTransactionFetcher.read error: {e}",
                exc_info=True,
                extra={"context": {"file_path": str(self.file_path), "error": e.message}}
            )
            raise
        except (OSError, ValueError) as e:
            logger.error(
                f"CSVTransactionFetcher.read error: {e}",
                exc_info=True,
                extra={"context": {"file_path": str(self.file_path), "error": str(e)}}
            )
            raise CSVExtractionError(
                f"Failed to read CSV file {self.file_path}",
                context={"file_path": str(self.file_path)},
                original_exception=e
            )

        logger.info(f"Read {len(transactions)} transactions from CSV")
        return transactions
