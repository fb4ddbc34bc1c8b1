"""SQLAlchemy models."""

from talentsync.models.access_log import AccessLogEntry
from talentsync.models.benchmarks import BenchmarkTemplate
from talentsync.models.candidates import Candidate, Job
from talentsync.models.enrichment import CandidateEnrichmentRecord
from talentsync.models.events import Event, SweepLock, WebhookDelivery
from talentsync.models.queue import EnrichmentQueueEntry
from talentsync.models.tenants import ATSConnection, Tenant

__all__ = [
    "AccessLogEntry",
    "ATSConnection",
    "BenchmarkTemplate",
    "Candidate",
    "CandidateEnrichmentRecord",
    "EnrichmentQueueEntry",
    "Event",
    "Job",
    "SweepLock",
    "Tenant",
    "WebhookDelivery",
]
