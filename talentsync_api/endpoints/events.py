"""Visitor event tracking endpoint."""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from talentsync.services import EventService

from talentsync_api.dependencies import get_db, get_tenant_id
from talentsync_api.schemas.events import TrackEventRequest, TrackEventResponse

logger = structlog.get_logger()
router = APIRouter()


@router.post("/track", response_model=TrackEventResponse, status_code=201)
async def track_event(
    body: TrackEventRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Record a job_viewed, apply_started or apply_completed event."""
    event = EventService(db).track(
        tenant_id,
        body.event_type,
        body.job_id,
        body.session_id,
        utm=body.utm.model_dump() if body.utm else None,
        referrer=body.referrer,
        metadata=body.metadata,
    )
    return TrackEventResponse.model_validate(event)
