"""Behavioral event tracking."""

from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from talentsync.errors import JobNotFoundError
from talentsync.models import Event, Job
from talentsync.schemas.events import TRACKED_EVENT_TYPES, validate_event_metadata
from talentsync.utils.time import utc_now

logger = structlog.get_logger()


class EventService:
    """Records visitor events (job_viewed, apply_started, apply_completed)."""

    def __init__(self, db: Session):
        self.db = db

    def track(
        self,
        tenant_id: str,
        event_type: str,
        job_id: int,
        session_id: str,
        utm: Optional[Dict[str, Optional[str]]] = None,
        referrer: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Event:
        """Append a tracked event for one of the tenant's jobs.

        Raises:
            ValueError: If the event type is not a tracked type
            JobNotFoundError: If the job does not belong to the tenant
            pydantic.ValidationError: If metadata does not match the tracking shape
        """
        if event_type not in TRACKED_EVENT_TYPES:
            raise ValueError(f"Untracked event type: {event_type}")

        job = self.db.execute(
            select(Job).where(Job.id == job_id, Job.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        utm = utm or {}
        tracking = dict(metadata or {})
        tracking.update(
            {
                "source": utm.get("source"),
                "medium": utm.get("medium"),
                "campaign": utm.get("campaign"),
                "referrer": referrer,
            }
        )

        event = Event(
            tenant_id=tenant_id,
            type=event_type,
            subject_id=str(job.id),
            session_id=session_id,
            timestamp=utc_now(),
            event_metadata=validate_event_metadata(event_type, tracking),
        )
        self.db.add(event)
        self.db.commit()

        logger.info("Event tracked", tenant_id=tenant_id, event_type=event_type, job_id=job.id, event_id=event.id)
        return event
