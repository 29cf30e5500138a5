# ============================================================================
# File: ingestion/runner.py
# Description: Batch run coordinator for transaction reconciliation
# ============================================================================
"""
Batch Runner - Orchestrates Collect, Dedup, Reconcile, Persist.

This module provides gated batch orchestration with:
- One run at a time (SEQUENTIAL on BATCH_JOB)
- Source collection as a PARALLEL task on DATA_COLLECTION
- Reconciliation as a SEQUENTIAL task on DATA_MERGE
- Store writes as a SEQUENTIAL task on FILE_WRITE
- Partial failure support (unmatched transactions are reported, not fatal)
- Idempotency through the persisted processed-id set
"""

import enum
import time
import uuid
from typing import Dict, Any, List, Optional
import logging

from core.gate import ResourceGate, ResourceGroup, sequential, parallel
from core.logging import BatchLogBuffer
from ingestion.base import FetcherDefinition
from ingestion.collection import TransactionCollector
from ingestion.reconciliation import ReconciliationEngine
from ingestion.loaders.batch_repository import BatchRepository
from schemas.transaction import Transaction, MergeTransaction, ReconciliationResult
from core.exceptions import BatchException, BatchExecutionError

logger = logging.getLogger(__name__)


class RunPhase(str, enum.Enum):
    IDLE = "IDLE"
    COLLECT = "COLLECT"
    DEDUP = "DEDUP"
    RECONCILE = "RECONCILE"
    PERSIST = "PERSIST"
    DONE = "DONE"
    ERROR = "ERROR"


class BatchRunner:
    """
    Reconciliation batch coordinator

    Responsibilities:
    - Sequence the phases under the resource gate
    - Skip reconciliation when nothing new arrived
    - Persist only successfully merged transaction ids
    - Produce the run result and keep it as ``last_result``

    ``run`` is the gated entry point; calling it while another run is in
    progress waits up to ``batch_max_wait`` seconds and then raises
    GateTimeoutError.
    """

    def __init__(
        self,
        fetchers: List[FetcherDefinition],
        collector: TransactionCollector,
        reconciler: ReconciliationEngine,
        repository: BatchRepository,
        gate: ResourceGate,
        log_buffer: Optional[BatchLogBuffer] = None,
        batch_max_wait: float = 600.0,
        gate_max_wait: float = 300.0
    ):
        self.fetchers = fetchers
        self.collector = collector
        self.reconciler = reconciler
        self.repository = repository
        self.gate = gate
        self.log_buffer = log_buffer

        self.phase = RunPhase.IDLE
        self.last_result: Optional[Dict[str, Any]] = None

        self.run = sequential(
            self._execute, gate, ResourceGroup.BATCH_JOB,
            task_name="BatchJob", max_wait_time=batch_max_wait
        )
        self._collect = parallel(
            self._collect_transactions, gate, ResourceGroup.DATA_COLLECTION,
            task_name="CollectTransactions", max_wait_time=gate_max_wait
        )
        self._reconcile = sequential(
            self.reconciler.reconcile, gate, ResourceGroup.DATA_MERGE,
            task_name="ReconcileTransactions", max_wait_time=gate_max_wait
        )
        self._persist = sequential(
            self._save_results, gate, ResourceGroup.FILE_WRITE,
            task_name="SaveMergeResults", max_wait_time=gate_max_wait
        )

    async def _collect_transactions(self) -> List[Transaction]:
        return await self.collector.fetch_from_multiple_sources(
            [{"fetcher": d.fetcher, "name": d.name} for d in self.fetchers]
        )

    async def _save_results(self, merged: List[MergeTransaction]) -> None:
        # Records before ids
        await self.repository.save_merge_transactions(merged)
        await self.repository.save_processed_ids([m.transaction_id for m in merged])

    async def _execute(self) -> Dict[str, Any]:
        """
        Run one batch.

        Returns:
            Dictionary with run statistics:
            - batch_id, status ("success", "partial_success", "no_new_data"), phase
            - total: transactions collected
            - new / duplicate: after dedup (duplicate includes repeats within the batch)
            - processed / failed: merged and unmatched transactions
            - failures: [{"transactionId", "reason"}]
            - duration_ms

        Raises:
            BatchException: any unrecovered failure (unexpected errors are
                wrapped in BatchExecutionError)
        """
        batch_id = str(uuid.uuid4())
        started = time.monotonic()
        self.phase = RunPhase.IDLE

        logger.info(f"Batch {batch_id} started", extra={"context": {"batch_id": batch_id}})

        try:
            # --------------------------------------------------
            # PHASE 1: COLLECT
            # --------------------------------------------------
            self.phase = RunPhase.COLLECT
            transactions = await self._collect()

            # --------------------------------------------------
            # PHASE 2: DEDUP
            # --------------------------------------------------
            self.phase = RunPhase.DEDUP
            unique, repeated = self.repository.drop_repeated(transactions)
            if repeated:
                logger.warning(f"Dropped {len(repeated)} transactions repeated across sources")

            processed_ids = await self.repository.get_processed_ids()
            split = self.repository.filter_duplicates(unique, processed_ids)
            duplicate_count = len(split.duplicate) + len(repeated)

            logger.info(
                f"Dedup: total={len(transactions)}, new={len(split.new)}, "
                f"duplicate={duplicate_count}"
            )

            if not split.new:
                self.phase = RunPhase.DONE
                return self._finish(
                    batch_id, started, "no_new_data",
                    total=len(transactions), new=0, duplicate=duplicate_count,
                    reconciliation=ReconciliationResult()
                )

            # --------------------------------------------------
            # PHASE 3: RECONCILE
            # --------------------------------------------------
            self.phase = RunPhase.RECONCILE
            reconciliation = await self._reconcile(split.new)

            # --------------------------------------------------
            # PHASE 4: PERSIST
            # --------------------------------------------------
            self.phase = RunPhase.PERSIST
            if reconciliation.successful:
                await self._persist(reconciliation.successful)
            else:
                logger.warning("No transaction could be reconciled, nothing to persist")

            self.phase = RunPhase.DONE
            status = "success" if not reconciliation.failed else "partial_success"
            return self._finish(
                batch_id, started, status,
                total=len(transactions), new=len(split.new), duplicate=duplicate_count,
                reconciliation=reconciliation
            )

        except Exception as e:
            failed_phase = self.phase
            self.phase = RunPhase.ERROR
            duration_ms = int((time.monotonic() - started) * 1000)

            logger.error(
                f"Batch {batch_id} failed in {failed_phase.value} after {duration_ms}ms: {e}",
                exc_info=True,
                extra={"context": {
                    "batch_id": batch_id,
                    "phase": failed_phase.value,
                    "duration_ms": duration_ms,
                    "error_type": type(e).__name__,
                    "error": e.to_dict() if isinstance(e, BatchException) else str(e)
                }}
            )

            if isinstance(e, BatchException):
                raise

            raise BatchExecutionError(
                f"Unexpected error in batch {batch_id}",
                context={
                    "batch_id": batch_id,
                    "phase": failed_phase.value,
                    "duration_ms": duration_ms
                },
                original_exception=e
            )

        finally:
            if self.log_buffer is not None:
                await self.log_buffer.flush()

    def _finish(
        self,
        batch_id: str,
        started: float,
        status: str,
        total: int,
        new: int,
        duplicate: int,
        reconciliation: ReconciliationResult
    ) -> Dict[str, Any]:
        result = {
            "batch_id": batch_id,
            "status": status,
            "phase": self.phase.value,
            "total": total,
            "new": new,
            "duplicate": duplicate,
            "processed": len(reconciliation.successful),
            "failed": len(reconciliation.failed),
            "failures": [f.model_dump(by_alias=True) for f in reconciliation.failed],
            "duration_ms": int((time.monotonic() - started) * 1000),
        }
        self.last_result = result

        logger.info(
            f"Batch {batch_id} completed: {status} - total={total}, new={new}, "
            f"duplicate={duplicate}, processed={result['processed']}, failed={result['failed']}",
            extra={"context": {k: v for k, v in result.items() if k != "failures"}}
        )
        return result
