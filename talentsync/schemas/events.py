"""Event metadata variants.

Each event type maps to one metadata kind. Metadata is validated on write
so the correlator and notification path can rely on its shape.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

TRACKED_EVENT_TYPES = ("job_viewed", "apply_started", "apply_completed")
RETARGET_EVENT = "retarget_triggered"


class TrackingMetadata(BaseModel):
    """Visitor-side events: job_viewed, apply_started, apply_completed."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["tracking"] = "tracking"
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    referrer: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class WebhookMetadata(BaseModel):
    """Events recorded from ATS webhook deliveries."""

    kind: Literal["webhook"] = "webhook"
    ats_event: str
    external_id: Optional[str] = None
    dedup_key: str
    sent_at: Optional[str] = None


class NotificationStatus(BaseModel):
    # pending -> sending -> sent | failed; skipped when there is no destination
    status: Literal["pending", "sending", "sent", "failed", "skipped"] = "pending"
    at: Optional[datetime] = None
    error: Optional[str] = None
    attempts: int = 0
    message_id: Optional[str] = None


class RetargetMetadata(BaseModel):
    """Derived retarget_triggered events."""

    kind: Literal["retarget"] = "retarget"
    reason: Literal["abandoned_application"] = "abandoned_application"
    origin_event_id: int
    time_since_started_seconds: int
    destination: Optional[str] = None
    notification: NotificationStatus = Field(default_factory=NotificationStatus)


EventMetadata = Annotated[
    Union[TrackingMetadata, WebhookMetadata, RetargetMetadata],
    Field(discriminator="kind"),
]

_metadata_adapter = TypeAdapter(EventMetadata)


def kind_for_event(event_type: str) -> str:
    if event_type == RETARGET_EVENT:
        return "retarget"
    if event_type in TRACKED_EVENT_TYPES:
        return "tracking"
    return "webhook"


def validate_event_metadata(event_type: str, raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate metadata for an event type and return its JSON-ready form.

    Raises:
        pydantic.ValidationError: If the metadata does not match the variant
    """
    data = dict(raw or {})
    expected = kind_for_event(event_type)
    data.setdefault("kind", expected)
    if data["kind"] != expected:
        raise ValueError(f"metadata kind '{data['kind']}' does not match event type '{event_type}'")
    return _metadata_adapter.validate_python(data).model_dump(mode="json")


def parse_event_metadata(raw: Dict[str, Any]):
    """Load stored metadata back into its variant model."""
    return _metadata_adapter.validate_python(raw)
