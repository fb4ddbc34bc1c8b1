"""Behavioral events, webhook idempotency and sweep locks."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    UniqueConstraint,
)

from talentsync.models.base import BaseModel
from talentsync.database import Base
from talentsync.utils.time import utc_now


class Event(BaseModel):
    """
    Append-only behavioral event.

    Derived events point at their origin through origin_event_id; the unique
    (type, origin_event_id) pair makes derivation exactly-once. The only
    mutation allowed after insert is the notification annotation in metadata.
    """

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    # apply_started, apply_completed, retarget_triggered, job.created, ...
    type = Column(String(50), nullable=False)
    subject_id = Column(String(100), nullable=True)  # Job or candidate id
    session_id = Column(String(100), nullable=True)
    timestamp = Column(DateTime, default=utc_now, nullable=False)
    event_metadata = Column("metadata", JSON, nullable=True)
    origin_event_id = Column(Integer, ForeignKey("events.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("type", "origin_event_id", name="uq_events_type_origin"),
        Index("idx_events_tenant_type_ts", "tenant_id", "type", "timestamp"),
        Index("idx_events_session", "tenant_id", "subject_id", "session_id"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, type={self.type}, subject_id={self.subject_id})>"


class WebhookDelivery(Base):
    """Idempotency store for inbound webhooks, keyed by (tenant, dedup key)."""

    __tablename__ = "webhook_deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False)
    dedup_key = Column(String(128), nullable=False)
    event_type = Column(String(100), nullable=True)
    # processing, processed
    status = Column(String(20), default="processing", nullable=False)
    received_at = Column(DateTime, default=utc_now, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "dedup_key", name="uq_webhook_tenant_key"),
    )

    def __repr__(self) -> str:
        return f"<WebhookDelivery(tenant_id={self.tenant_id}, dedup_key={self.dedup_key})>"


class SweepLock(Base):
    """Short-lived named lock so periodic sweeps never overlap per tenant."""

    __tablename__ = "sweep_locks"

    name = Column(String(64), nullable=False)
    tenant_id = Column(String(64), nullable=False)
    owner = Column(String(64), nullable=False)
    locked_until = Column(DateTime, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("name", "tenant_id"),)
