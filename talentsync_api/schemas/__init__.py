"""Request and response schemas for the TalentSync API."""

from .base import CamelModel, ErrorDetail, ErrorResponse
from .benchmarks import BenchmarkTemplateCreate, BenchmarkTemplateResponse, BenchmarkTemplateUpdate
from .candidates import (
    AccessLogEntryResponse,
    ConsentRequest,
    ConsentResponse,
    EnrichRequest,
    ItemScoreResponse,
    QueueEntryResponse,
    QueueStatusResponse,
    ScoreResponse,
)
from .events import TrackEventRequest, TrackEventResponse, UTMParams

__all__ = [
    "AccessLogEntryResponse",
    "CamelModel",
    "ErrorDetail",
    "ErrorResponse",
    "BenchmarkTemplateCreate",
    "BenchmarkTemplateResponse",
    "BenchmarkTemplateUpdate",
    "ConsentRequest",
    "ConsentResponse",
    "EnrichRequest",
    "ItemScoreResponse",
    "QueueEntryResponse",
    "QueueStatusResponse",
    "ScoreResponse",
    "TrackEventRequest",
    "TrackEventResponse",
    "UTMParams",
]
