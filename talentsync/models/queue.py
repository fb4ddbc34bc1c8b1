"""Enrichment queue model."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from talentsync.models.base import BaseModel
from talentsync.utils.time import utc_now


class EnrichmentQueueEntry(BaseModel):
    """
    Durable work item for the enrichment worker.

    At most one entry exists per candidate. Workers claim entries with a
    conditional update on (status, lock_version).
    """

    __tablename__ = "enrichment_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    candidate_id = Column(Integer, ForeignKey("candidates.id"), nullable=False)

    # Queue status: pending, processing, done, failed
    status = Column(String(20), default="pending", nullable=False)
    priority = Column(Integer, default=0, nullable=False)  # Higher = more urgent

    retry_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    failure_reason = Column(String(100), nullable=True)  # Set on terminal failure

    # Caller-supplied source material (resume_text, resume_url, profile)
    payload = Column(JSON, nullable=True)

    # Incremented on every claim; finalisation must present the current value
    lock_version = Column(Integer, default=0, nullable=False)

    available_at = Column(DateTime, default=utc_now, nullable=False)  # For retry backoff
    claimed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "candidate_id", name="uq_queue_tenant_candidate"),
        Index("idx_queue_pending", "status", "available_at", "priority"),
    )

    def __repr__(self) -> str:
        return f"<EnrichmentQueueEntry(id={self.id}, candidate_id={self.candidate_id}, status={self.status})>"
