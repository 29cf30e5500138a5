"""
Pydantic schemas for transactions flowing through the reconciliation batch
"""

from pydantic import BaseModel, Field, validator
from typing import List, Literal
from datetime import datetime
from core.exceptions import MergeMismatchError


def _as_text(v):
    """Strip text and render integer ids as text"""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


class Transaction(BaseModel):
    """
    Canonical transaction record produced by every source fetcher.

    Ensures:
    - Required fields are present
    - amount and balance are integers (numeric text is coerced)
    - date is a calendar date in yyyy-MM-dd form
    - cancelYn is exactly "Y" or "N"
    """

    transaction_id: str = Field(..., min_length=1, alias="transactionId")
    store_id: str = Field(..., min_length=1, alias="storeId")
    date: str
    amount: int
    balance: int
    cancel_yn: Literal["Y", "N"] = Field(..., alias="cancelYn")

    @validator("transaction_id", "store_id", "date", pre=True)
    def strip_text(cls, v):
        return _as_text(v)

    @validator("date")
    def validate_date(cls, v):
        try:
            datetime.strptime(v, "%Y-%m-%d")
        except ValueError:
            raise ValueError(f"date must be yyyy-MM-dd, got {v!r}")
        return v

    class Config:
        populate_by_name = True
        frozen = True


class StoreTransaction(BaseModel):
    """Secondary source's view of a transaction. ``date`` is the lookup date."""

    store_id: str = Field(..., alias="storeId")
    transaction_id: str = Field(..., alias="transactionId")
    product_id: str = Field(..., alias="productId")
    date: str

    @validator("store_id", "transaction_id", "product_id", pre=True)
    def strip_text(cls, v):
        return _as_text(v)

    class Config:
        populate_by_name = True
        frozen = True


class MergeTransaction(Transaction):
    """Transaction enriched with the product id of its matching store transaction"""

    product_id: str = Field(..., alias="productId")


def create_merge_transaction(tx: Transaction, store_tx: StoreTransaction) -> MergeTransaction:
    """
    Merge a transaction with its store transaction.

    Raises:
        MergeMismatchError: transaction id or store id differ
    """
    if tx.transaction_id != store_tx.transaction_id or tx.store_id != store_tx.store_id:
        raise MergeMismatchError(
            "Transaction does not match store transaction",
            context={
                "transaction_id": tx.transaction_id,
                "store_id": tx.store_id,
                "store_transaction_id": store_tx.transaction_id,
                "store_transaction_store_id": store_tx.store_id,
            },
        )

    return MergeTransaction(
        **tx.model_dump(),
        product_id=store_tx.product_id,
    )


class ReconciliationFailure(BaseModel):
    transaction_id: str = Field(..., alias="transactionId")
    reason: str

    class Config:
        populate_by_name = True


class ReconciliationResult(BaseModel):
    """Outcome of reconciling one batch"""
    successful: List[MergeTransaction] = Field(default_factory=list)
    failed: List[ReconciliationFailure] = Field(default_factory=list)


class DuplicateSplit(BaseModel):
    """Partition of a batch by membership in the processed-id set"""
    new: List[Transaction] = Field(default_factory=list)
    duplicate: List[Transaction] = Field(default_factory=list)
