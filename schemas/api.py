"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from schemas.transaction import MergeTransaction


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Gate Schemas
# ============================================================================

class TaskInfo(BaseModel):
    """A gate task as seen by monitoring"""
    id: str
    type: str
    resource_group: str
    status: str
    name: str
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None


class GateStatus(BaseModel):
    running: List[TaskInfo] = Field(default_factory=list)
    pending: List[TaskInfo] = Field(default_factory=list)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    store_connected: bool
    running_tasks: int = 0
    pending_tasks: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "store_connected": True,
                "running_tasks": 1,
                "pending_tasks": 0
            }
        }


# ============================================================================
# Data Query Schemas
# ============================================================================

class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


class MergeTransactionPage(BaseModel):
    """Paginated merged transactions"""
    items: List[MergeTransaction]
    pagination: PaginationMetadata

    class Config:
        json_schema_extra = {
            "example": {
                "items": [
                    {
                        "transactionId": "e0af8fd4-977a-4db3-b2ea-8fbe007708c9",
                        "storeId": "2033935",
                        "date": "2022-07-11",
                        "amount": 44906,
                        "balance": 123,
                        "cancelYn": "N",
                        "productId": "P-1001"
                    }
                ],
                "pagination": {
                    "page": 1,
                    "page_size": 50,
                    "total_items": 1,
                    "total_pages": 1,
                    "has_next": False,
                    "has_previous": False
                }
            }
        }


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Statistics response model"""
    timestamp: datetime = Field(default_factory=_utcnow)
    processed_ids: int
    merged_transactions: int
    gate: GateStatus
    last_run: Optional[Dict[str, Any]] = None
