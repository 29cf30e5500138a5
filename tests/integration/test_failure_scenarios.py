"""
Tests for failure scenarios and error handling
"""

import asyncio
import json
import httpx
import pytest
import pytest_asyncio
from core.config import Settings
from core.exceptions import PersistenceError
from ingestion.scheduler import BatchScheduler
from ingestion.loaders.batch_repository import MERGE_TRANSACTIONS_KEY, PROCESSED_IDS_KEY


def source_a_record(tx_id, store_id="store-1", date="2021-01-01"):
    return {"amount": 100, "balance": 10, "cancelYn": "N", "date": date,
            "storeId": store_id, "transactionId": tx_id}


class ScriptedUpstream:
    """
    Source A serves one page; the other sources are empty unless scripted.

    ``status`` maps a host to a status code (or list of codes, consumed per
    request) returned instead of the normal response.
    """

    def __init__(self):
        self.status = {}
        self.calls = {}
        self.source_a = [source_a_record("tx-1"), source_a_record("tx-2")]
        self.source_c = []
        self.store = {("store-1", "2021-01-01"): ["tx-1", "tx-2"]}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        self.calls[host] = self.calls.get(host, 0) + 1

        scripted = self.status.get(host)
        if isinstance(scripted, list) and scripted:
            return httpx.Response(scripted.pop(0))
        if isinstance(scripted, int):
            if scripted == 0:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(scripted)

        if host == "source-a":
            page = int(request.url.params["page"])
            return httpx.Response(200, json={"list": self.source_a if page == 1 else []})
        if host == "source-b":
            return httpx.Response(200, text="")
        if host == "source-c":
            page = json.loads(request.content)["page"]
            return httpx.Response(200, json={"transactionList": self.source_c if page == 1 else []})
        if host == "store":
            store_id = request.url.path.rsplit("/", 1)[-1]
            body = json.loads(request.content)
            if body["page"] > 1:
                return httpx.Response(404)
            ids = self.store.get((store_id, body["date"]), [])
            return httpx.Response(200, json={"list": [
                {"storeId": store_id, "transactionId": tx_id, "productId": f"P-{tx_id}"}
                for tx_id in ids
            ]})
        return httpx.Response(500)


@pytest.fixture
def upstream():
    return ScriptedUpstream()


@pytest_asyncio.fixture
async def batch(memory_store, upstream):
    settings = Settings(
        SOURCE_A_URL="http://source-a",
        SOURCE_B_URL="http://source-b",
        SOURCE_C_URL="http://source-c",
        STORE_TRANSACTION_URL="http://store",
        DISABLED_SOURCES=["csv"],
        RETRY_DELAY=0,
        GATE_POLL_INTERVAL=0.01,
        RUN_ON_STARTUP=False,
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    scheduler = BatchScheduler(settings, store=memory_store, client=client)
    await scheduler.initialize()

    yield scheduler

    await scheduler.stop()
    await client.aclose()


@pytest.mark.asyncio
async def test_source_down_is_isolated(batch, upstream, memory_store):
    """
    Test: one source refuses connections, the others are still collected
    """
    upstream.status["source-b"] = 0

    result = await batch.runner.run()

    assert result["status"] == "success"
    assert result["processed"] == 2
    assert memory_store.data[PROCESSED_IDS_KEY] == ["tx-1", "tx-2"]


@pytest.mark.asyncio
async def test_overloaded_source_recovers_within_retry_budget(batch, upstream, memory_store):
    """
    Test: source C answers 502 three times and then succeeds (3 retries allowed)
    """
    upstream.status["source-c"] = [502, 502, 502]
    upstream.source_c = [{"AMOUNT": 5, "BALANCE": 5, "CANCEL_YN": "N", "DATE": "2021-01-01",
                          "STORE_ID": "store-1", "TRANSACTION_ID": "tx-3"}]
    upstream.store[("store-1", "2021-01-01")].append("tx-3")

    result = await batch.runner.run()

    assert result["processed"] == 3
    assert "tx-3" in memory_store.data[PROCESSED_IDS_KEY]


@pytest.mark.asyncio
async def test_overloaded_source_beyond_retry_budget_is_skipped(batch, upstream):
    """
    Test: source A keeps answering 502, 2 attempts are made and it is skipped
    """
    upstream.status["source-a"] = 502

    result = await batch.runner.run()

    assert upstream.calls["source-a"] == 2
    assert result["status"] == "no_new_data"
    assert result["total"] == 0


@pytest.mark.asyncio
async def test_store_lookup_failure_reports_transactions_as_failed(batch, upstream, memory_store):
    """
    Test: the store-transaction upstream fails, nothing merges, nothing is persisted
    """
    upstream.status["store"] = 500

    result = await batch.runner.run()

    assert result["status"] == "partial_success"
    assert result["processed"] == 0
    assert result["failed"] == 2
    assert PROCESSED_IDS_KEY not in memory_store.data
    assert MERGE_TRANSACTIONS_KEY not in memory_store.data


@pytest.mark.asyncio
async def test_failed_transactions_are_retried_next_run(batch, upstream, memory_store):
    upstream.store[("store-1", "2021-01-01")] = ["tx-1"]
    first = await batch.runner.run()
    assert first["failed"] == 1

    upstream.store[("store-1", "2021-01-01")] = ["tx-1", "tx-2"]
    second = await batch.runner.run()

    assert second["new"] == 1
    assert second["duplicate"] == 1
    assert second["processed"] == 1
    assert memory_store.data[PROCESSED_IDS_KEY] == ["tx-1", "tx-2"]


@pytest.mark.asyncio
async def test_persistence_failure_is_fatal(batch, memory_store):
    """
    Test: the store rejects writes, the run fails and the scheduler job survives
    """
    memory_store.fail_on_put = RuntimeError("disk full")

    with pytest.raises(PersistenceError):
        await batch.runner.run()

    assert await batch.run_batch_job() is None
    assert batch.gate.get_status()["running"] == []


@pytest.mark.asyncio
async def test_concurrent_runs_do_not_double_process(batch, memory_store):
    """
    Test: two triggers at once, the second waits and finds nothing new
    """
    results = await asyncio.gather(batch.runner.run(), batch.runner.run())

    statuses = sorted(r["status"] for r in results)
    assert statuses == ["no_new_data", "success"]
    assert memory_store.data[PROCESSED_IDS_KEY] == ["tx-1", "tx-2"]
    assert len(memory_store.data[MERGE_TRANSACTIONS_KEY]) == 2
