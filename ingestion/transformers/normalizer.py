"""
Project source wire records onto the canonical Transaction schema with Pydantic validation
"""

from typing import Dict, Any, List, Mapping
from pydantic import ValidationError
from schemas.transaction import Transaction
from core.exceptions import NormalizationError
import logging

logger = logging.getLogger(__name__)


# Wire field name -> Transaction field name
CAMEL_CASE_FIELDS: Dict[str, str] = {
    "transactionId": "transaction_id",
    "storeId": "store_id",
    "date": "date",
    "amount": "amount",
    "balance": "balance",
    "cancelYn": "cancel_yn",
}

UPPER_SNAKE_FIELDS: Dict[str, str] = {
    "TRANSACTION_ID": "transaction_id",
    "STORE_ID": "store_id",
    "DATE": "date",
    "AMOUNT": "amount",
    "BALANCE": "balance",
    "CANCEL_YN": "cancel_yn",
}


def rename_fields(record: Mapping[str, Any], field_map: Mapping[str, str]) -> Dict[str, Any]:
    """Pure renaming projection. Keys outside ``field_map`` are dropped."""
    return {
        target: record[source]
        for source, target in field_map.items()
        if source in record
    }


class TransactionNormalizer:
    """
    Normalize records from one source into Transaction.

    Handles:
    - Field renaming (camelCase or UPPER_SNAKE wire names)
    - Whitespace stripping of text values
    - Type conversion and validation via the Transaction schema
    """

    def __init__(self, source_name: str, field_map: Mapping[str, str] = CAMEL_CASE_FIELDS):
        self.source_name = source_name
        self.field_map = field_map

    def normalize(self, record: Mapping[str, Any]) -> Transaction:
        """
        Normalize one wire record.

        Raises:
            NormalizationError: a field is missing or has an invalid value
        """
        if not isinstance(record, Mapping):
            raise NormalizationError(
                f"Expected an object, got {type(record).__name__}",
                context={"source_name": self.source_name}
            )

        data = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in rename_fields(record, self.field_map).items()
        }

        try:
            return Transaction(**data)
        except ValidationError as e:
            field_errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ]
            raise NormalizationError(
                f"Invalid transaction record from {self.source_name}",
                context={
                    "source_name": self.source_name,
                    "transaction_id": data.get("transaction_id"),
                    "field_errors": field_errors
                },
                original_exception=e
            )

    def normalize_many(self, records: List[Mapping[str, Any]]) -> List[Transaction]:
        """Normalize a whole page. The first invalid record fails the page."""
        return [self.normalize(record) for record in records]
