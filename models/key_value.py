from sqlalchemy import Column, String, DateTime
from datetime import datetime, timezone
from models.base import Base, JSONValue


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """
    One opaque JSON value stored under a string key.

    Purpose:
    - Durable home for merge_transactions, processed_transaction_ids
      and batch_logs
    - Whole-value reads and writes only (read-modify-write happens in
      the callers, serialized by the FILE_WRITE gate)
    """
    __tablename__ = "key_value_entries"

    key = Column(String(255), primary_key=True)
    value = Column(JSONValue, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
