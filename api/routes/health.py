"""
Health check endpoint with store and gate status
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_store, get_gate
from core.gate import ResourceGate
from ingestion.loaders.key_value_store import KeyValueStore
from schemas.api import HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    store: KeyValueStore = Depends(get_store),
    gate: ResourceGate = Depends(get_gate)
):
    """
    Health check endpoint.

    Returns:
    - Store connectivity
    - Number of running and pending gate tasks
    """
    store_connected = await store.ping()
    if not store_connected:
        logger.error("Store connection failed")

    status = gate.get_status()

    return HealthCheckResponse(
        status="healthy" if store_connected else "unhealthy",
        store_connected=store_connected,
        running_tasks=len(status["running"]),
        pending_tasks=len(status["pending"])
    )
