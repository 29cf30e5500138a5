"""
Merged transaction retrieval endpoint with pagination and filtering
"""

from fastapi import APIRouter, Depends, Query, Request
from api.dependencies import get_repository
from ingestion.loaders.batch_repository import BatchRepository
from schemas.api import MergeTransactionPage, PaginationMetadata
from typing import Optional
import math
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Data"])


@router.get("/transactions", response_model=MergeTransactionPage)
async def get_transactions(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    store_id: Optional[str] = Query(None, description="Filter by store id"),
    date: Optional[str] = Query(None, description="Filter by transaction date (yyyy-MM-dd)"),
    repository: BatchRepository = Depends(get_repository)
):
    """
    Retrieve merged transactions in stored (append) order.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(
        f"[{request_id}] GET /transactions - page={page}, page_size={page_size}, "
        f"store_id={store_id}, date={date}"
    )

    items = await repository.get_all_merge_transactions()
    if store_id is not None:
        items = [m for m in items if m.store_id == store_id]
    if date is not None:
        items = [m for m in items if m.date == date]

    total_items = len(items)
    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    offset = (page - 1) * page_size

    return MergeTransactionPage(
        items=items[offset:offset + page_size],
        pagination=PaginationMetadata(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        )
    )
