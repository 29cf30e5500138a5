"""
SQLAlchemy ORM models for the durable key-value store.

Models:
    base: Base declarative class and the portable JSON column type
    key_value: KeyValueEntry, one JSON value per string key

Database Schema:
    A single table, ``key_value_entries``. The batch keeps its state under
    three keys:

    - merge_transactions: list of merged transaction dicts
    - processed_transaction_ids: list of transaction ids already ingested
    - batch_logs: list of structured log records

Usage:
    from models.key_value import KeyValueEntry
    from models.base import Base
"""

__all__ = [
    "Base",
    "JSONValue",
    "KeyValueEntry",
]
