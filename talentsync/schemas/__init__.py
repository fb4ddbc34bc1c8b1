"""Pydantic schemas for JSON payloads stored by the core."""

from talentsync.schemas.benchmarks import (
    BenchmarkResult,
    ItemScore,
    ScoringRules,
    TemplateDefinition,
)
from talentsync.schemas.enrichment import EnrichmentProfile
from talentsync.schemas.events import (
    NotificationStatus,
    RetargetMetadata,
    TrackingMetadata,
    WebhookMetadata,
    validate_event_metadata,
)

__all__ = [
    "BenchmarkResult",
    "EnrichmentProfile",
    "ItemScore",
    "NotificationStatus",
    "RetargetMetadata",
    "ScoringRules",
    "TemplateDefinition",
    "TrackingMetadata",
    "WebhookMetadata",
    "validate_event_metadata",
]
