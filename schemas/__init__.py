"""
Pydantic schemas for data validation and serialization.

Schemas:
    transaction: Transaction, StoreTransaction, MergeTransaction and the
        reconciliation/dedup result types
    api: API endpoint response schemas

Features:
    - camelCase wire names as aliases, snake_case attributes
    - Numeric text coerced to int, invalid values rejected
    - OpenAPI schema generation for FastAPI

Usage:
    from schemas.transaction import Transaction, create_merge_transaction
    from schemas.api import HealthCheckResponse, StatsResponse

Example:
    tx = Transaction.model_validate({
        "transactionId": "tx-1",
        "storeId": "store-1",
        "date": "2021-01-01",
        "amount": "1000",
        "balance": 500,
        "cancelYn": "N",
    })
    assert tx.amount == 1000
    tx.model_dump(by_alias=True)  # camelCase keys
"""

__all__ = [
    "Transaction",
    "StoreTransaction",
    "MergeTransaction",
    "create_merge_transaction",
    "ReconciliationFailure",
    "ReconciliationResult",
    "DuplicateSplit",
    "HealthCheckResponse",
    "MergeTransactionPage",
    "StatsResponse",
]
