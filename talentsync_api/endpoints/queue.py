"""Enrichment queue status endpoint."""

import structlog
from fastapi import APIRouter, Depends, Query

from talentsync.queue_manager import EnrichmentQueue

from talentsync_api.dependencies import get_queue, get_tenant_id
from talentsync_api.schemas.candidates import QueueEntryResponse, QueueStatusResponse

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=QueueStatusResponse)
async def get_queue_status(
    limit: int = Query(50, ge=1, le=200),
    tenant_id: str = Depends(get_tenant_id),
    queue: EnrichmentQueue = Depends(get_queue),
):
    """Counts by status plus the most recent terminal failures."""
    counts = queue.status_counts(tenant_id)
    failed = queue.list_failed(tenant_id, limit=limit)
    return QueueStatusResponse(
        **counts,
        failed_entries=[QueueEntryResponse.model_validate(e) for e in failed],
    )
