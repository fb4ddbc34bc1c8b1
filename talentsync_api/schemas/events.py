"""Event tracking schemas."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import Field

from .base import CamelModel


class UTMParams(CamelModel):
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None


class TrackEventRequest(CamelModel):
    event_type: Literal["job_viewed", "apply_started", "apply_completed"]
    job_id: int
    session_id: str = Field(min_length=1, max_length=100)
    utm: Optional[UTMParams] = None
    referrer: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TrackEventResponse(CamelModel):
    id: int
    type: str
    subject_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime
