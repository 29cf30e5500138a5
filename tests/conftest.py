"""
Pytest configuration and fixtures
"""

import copy
import pytest
import pytest_asyncio
from typing import Any, Dict, Optional
from core.database import create_engine, create_session_maker, init_models
from core.gate import ResourceGate
from ingestion.loaders.key_value_store import SQLKeyValueStore
from schemas.transaction import Transaction


class InMemoryKeyValueStore:
    """KeyValueStore fake. Values are deep-copied in and out like a real store."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = copy.deepcopy(data or {})
        self.fail_on_get: Optional[Exception] = None
        self.fail_on_put: Optional[Exception] = None
        self.put_calls = 0
        self.ping_calls = 0

    async def get(self, key: str):
        if self.fail_on_get is not None:
            raise self.fail_on_get
        return copy.deepcopy(self.data.get(key))

    async def put(self, key: str, value: Any) -> None:
        if self.fail_on_put is not None:
            raise self.fail_on_put
        self.put_calls += 1
        self.data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def ping(self) -> bool:
        self.ping_calls += 1
        return self.fail_on_get is None


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def fast_gate():
    """Gate that polls every 10ms"""
    return ResourceGate(poll_interval=0.01)


@pytest.fixture
def make_transaction():
    """Factory for Transaction with overridable fields"""
    def _make(transaction_id: str = "tx-1", **overrides) -> Transaction:
        data = {
            "transactionId": transaction_id,
            "storeId": "store-1",
            "date": "2021-01-01",
            "amount": 1000,
            "balance": 500,
            "cancelYn": "N",
        }
        data.update(overrides)
        return Transaction.model_validate(data)
    return _make


@pytest.fixture
def sample_transactions(make_transaction):
    return [
        make_transaction("tx-1"),
        make_transaction("tx-2", date="2021-01-02"),
        make_transaction("tx-3", storeId="store-2"),
    ]


@pytest_asyncio.fixture(scope="function")
async def sqlite_store(tmp_path):
    """SQLKeyValueStore on a throwaway SQLite file"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_models(engine)

    yield SQLKeyValueStore(create_session_maker(engine))

    await engine.dispose()
