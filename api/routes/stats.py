"""
Batch statistics and gate monitoring endpoint
"""
from fastapi import APIRouter, Depends
from api.dependencies import get_repository, get_gate, get_runner
from core.gate import ResourceGate
from ingestion.loaders.batch_repository import BatchRepository
from ingestion.runner import BatchRunner
from schemas.api import StatsResponse, GateStatus, TaskInfo
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    repository: BatchRepository = Depends(get_repository),
    gate: ResourceGate = Depends(get_gate),
    runner: BatchRunner = Depends(get_runner)
):
    """
    Get batch statistics.

    Returns:
    - Size of the processed-id set and of the merged transaction list
    - Running and pending gate tasks
    - Result of the last completed run (if any)
    """
    processed_ids = await repository.get_processed_ids()
    merged = await repository.get_all_merge_transactions()
    status = gate.get_status()

    return StatsResponse(
        processed_ids=len(processed_ids),
        merged_transactions=len(merged),
        gate=GateStatus(
            running=[TaskInfo(**t.to_dict()) for t in status["running"]],
            pending=[TaskInfo(**t.to_dict()) for t in status["pending"]],
        ),
        last_run=runner.last_result if runner is not None else None
    )
