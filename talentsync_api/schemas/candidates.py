"""Candidate enrichment, scoring and consent schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, HttpUrl

from .base import CamelModel


class EnrichRequest(CamelModel):
    """Queue a candidate for enrichment, optionally with source material."""

    priority: int = Field(default=0, ge=0, le=100)
    resume_text: Optional[str] = None
    resume_url: Optional[HttpUrl] = None
    profile: Optional[Dict[str, Any]] = None
    reset: bool = False

    def payload(self) -> Optional[Dict[str, Any]]:
        data = {
            "resume_text": self.resume_text,
            "resume_url": str(self.resume_url) if self.resume_url else None,
            "profile": self.profile,
        }
        data = {k: v for k, v in data.items() if v}
        return data or None


class QueueEntryResponse(CamelModel):
    id: int
    candidate_id: int
    status: str
    priority: int
    retry_count: int
    last_error: Optional[str] = None
    failure_reason: Optional[str] = None
    available_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ItemScoreResponse(CamelModel):
    category: str
    name: str
    weight: float
    observed: float
    required: float
    ratio: float
    contribution: float


class ScoreResponse(CamelModel):
    """A completed score, or a not-yet-enriched marker."""

    candidate_id: int
    status: Literal["scored", "not_enriched"]
    queue_status: Optional[str] = None
    template_id: Optional[int] = None
    template_name: Optional[str] = None
    template_version: Optional[int] = None
    overall_score: Optional[float] = None
    tier: Optional[str] = None
    category_scores: Dict[str, float] = {}
    strengths: List[str] = []
    development_areas: List[str] = []
    item_scores: List[ItemScoreResponse] = []


class ConsentRequest(CamelModel):
    data_usage_consent: bool
    actor: Optional[str] = None


class ConsentResponse(CamelModel):
    candidate_id: int
    data_usage_consent: bool
    consent_updated_at: Optional[datetime] = None


class QueueStatusResponse(CamelModel):
    pending: int = 0
    processing: int = 0
    done: int = 0
    failed: int = 0
    failed_entries: List[QueueEntryResponse] = []


class AccessLogEntryResponse(CamelModel):
    id: int
    actor: str
    access_type: str
    reason: Optional[str] = None
    accessed_at: datetime
    retain_until: datetime
