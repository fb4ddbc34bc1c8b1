"""Base class for processors that run inside a worker session."""

from typing import Optional

import structlog
from sqlalchemy.orm import Session

from talentsync.models import EnrichmentQueueEntry
from talentsync.queue_manager import EnrichmentQueue


class BaseProcessor:
    """Shared wiring for processors: a session, the queue and a bound logger."""

    # Override in subclasses
    name: str = "base"

    def __init__(self, db: Session, queue: EnrichmentQueue):
        """Initialize processor with database session and queue.

        Args:
            db: SQLAlchemy session owned by the caller for this unit of work
            queue: Enrichment queue bound to the same session
        """
        self.db = db
        self.queue = queue
        self.logger = structlog.get_logger().bind(processor=self.name)

    def enqueue_enrichment(
        self,
        tenant_id: str,
        candidate_id: int,
        priority: int = 0,
        payload: Optional[dict] = None,
    ) -> EnrichmentQueueEntry:
        """Enqueue (or re-open) enrichment for a candidate."""
        return self.queue.enqueue(candidate_id, tenant_id, priority=priority, payload=payload)
