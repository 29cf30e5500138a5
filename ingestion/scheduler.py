import asyncio
import logging
import httpx
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import Settings, settings as default_settings
from core.database import create_engine, create_session_maker, init_models
from core.gate import ResourceGate
from core.logging import BatchLogBuffer, attach_batch_log_handler, detach_batch_log_handler
from ingestion.collection import TransactionCollector
from ingestion.extractors.store_transaction import StoreTransactionFetcher
from ingestion.loaders.batch_repository import BatchRepository
from ingestion.loaders.key_value_store import KeyValueStore, SQLKeyValueStore
from ingestion.reconciliation import ReconciliationEngine
from ingestion.registry import build_fetcher_registry
from ingestion.runner import BatchRunner

logger = logging.getLogger(__name__)

JOB_ID = "reconciliation_batch"


class BatchScheduler:
    """
    Owns the process-wide pieces and triggers the batch periodically.

    ``initialize()`` builds the store, HTTP client, gate, log sink and
    runner; ``start()`` schedules the job; ``stop()`` releases everything.
    A store or client passed in is used as is and not closed on stop.
    """

    def __init__(
        self,
        settings: Settings = None,
        store: Optional[KeyValueStore] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings or default_settings
        self.scheduler = AsyncIOScheduler()
        self.gate = ResourceGate(poll_interval=self.settings.GATE_POLL_INTERVAL)

        self.engine = None
        self.store = store
        self.client = client
        self._owns_client = client is None

        self.log_buffer: Optional[BatchLogBuffer] = None
        self.repository: Optional[BatchRepository] = None
        self.runner: Optional[BatchRunner] = None
        self._log_handler = None

    async def initialize(self) -> None:
        if self.store is None:
            self.engine = create_engine(self.settings.DATABASE_URL)
            await init_models(self.engine)
            self.store = SQLKeyValueStore(create_session_maker(self.engine))

        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.settings.API_TIMEOUT)

        self.log_buffer = BatchLogBuffer(self.store)
        self._log_handler = attach_batch_log_handler(self.log_buffer)

        self.repository = BatchRepository(self.store)
        reconciler = ReconciliationEngine(
            StoreTransactionFetcher(
                self.settings.STORE_TRANSACTION_URL,
                client=self.client,
                max_retries=self.settings.STORE_TRANSACTION_MAX_RETRIES,
                retry_delay=self.settings.RETRY_DELAY,
                timeout=self.settings.API_TIMEOUT,
            ),
            concurrency=self.settings.PREFETCH_CONCURRENCY,
            max_pages=self.settings.MAX_PAGES,
        )
        self.runner = BatchRunner(
            fetchers=build_fetcher_registry(self.client, self.settings),
            collector=TransactionCollector(max_pages=self.settings.MAX_PAGES),
            reconciler=reconciler,
            repository=self.repository,
            gate=self.gate,
            log_buffer=self.log_buffer,
            batch_max_wait=self.settings.BATCH_MAX_WAIT_SECONDS,
            gate_max_wait=self.settings.GATE_MAX_WAIT_SECONDS,
        )
        logger.info("Batch scheduler initialized")

    async def run_batch_job(self) -> Optional[Dict[str, Any]]:
        """Job to run one reconciliation batch. Failures are logged, never raised."""
        logger.info("Scheduler: Starting reconciliation batch")
        try:
            return await self.runner.run()
        except Exception as e:
            logger.error(f"Scheduler: batch failed - {e}")
            return None

    def start(self):
        """Start the scheduler (needs a running event loop)"""
        job_options = {}
        if self.settings.RUN_ON_STARTUP:
            job_options["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self.run_batch_job,
            trigger=IntervalTrigger(minutes=self.settings.BATCH_INTERVAL_MINUTES),
            id=JOB_ID,
            replace_existing=True,
            # A second trigger may overlap a slow run; the gate makes it wait
            max_instances=2,
            coalesce=True,
            **job_options
        )
        self.scheduler.start()
        logger.info(
            f"Batch scheduler started (every {self.settings.BATCH_INTERVAL_MINUTES} minutes)"
        )

    async def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler may finish shutting down on a later loop iteration
            while self.scheduler.running:
                await asyncio.sleep(0)

        if self._log_handler is not None:
            detach_batch_log_handler(self._log_handler)
            self._log_handler = None
        if self.log_buffer is not None:
            await self.log_buffer.flush()

        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

        logger.info("Batch scheduler stopped")
