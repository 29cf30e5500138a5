"""
Durable JSON key-value store on SQLAlchemy async sessions
"""

from typing import Any, Optional, Protocol
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.key_value import KeyValueEntry
from core.exceptions import PersistenceError
import logging

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Whole-value get/put/delete of JSON documents keyed by string"""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def put(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def ping(self) -> bool:
        ...


class SQLKeyValueStore:
    """
    KeyValueStore backed by the ``key_value_entries`` table.

    Each call runs in its own session and commits before returning.
    Writes replace the whole value (no partial updates).
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def get(self, key: str) -> Optional[Any]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(KeyValueEntry.value).where(KeyValueEntry.key == key)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to read key {key}",
                context={"operation": "get", "key": key},
                original_exception=e
            )

    async def put(self, key: str, value: Any) -> None:
        try:
            async with self.session_maker() as session:
                # merge() is a portable upsert on the primary key
                await session.merge(KeyValueEntry(key=key, value=value))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to write key {key}",
                context={"operation": "put", "key": key},
                original_exception=e
            )
        logger.debug(f"Stored key {key}")

    async def delete(self, key: str) -> None:
        try:
            async with self.session_maker() as session:
                await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to delete key {key}",
                context={"operation": "delete", "key": key},
                original_exception=e
            )

    async def ping(self) -> bool:
        """True when the store answers a trivial read"""
        try:
            await self.get("__ping__")
            return True
        except PersistenceError:
            return False
