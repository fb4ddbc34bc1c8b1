"""Domain services."""

from talentsync.services.access_log import AccessLogService
from talentsync.services.benchmarks import BenchmarkTemplateService
from talentsync.services.encryption import TokenCipher
from talentsync.services.enrichment import EnrichmentService, NotYetEnriched
from talentsync.services.events import EventService

__all__ = [
    "AccessLogService",
    "BenchmarkTemplateService",
    "EnrichmentService",
    "EventService",
    "NotYetEnriched",
    "TokenCipher",
]
