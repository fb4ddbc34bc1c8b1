"""Job and candidate models synced from the ATS."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from talentsync.models.base import BaseModel


class Job(BaseModel):
    """Job (requisition) mirrored from the ATS."""

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    external_id = Column(String(100), nullable=False)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    # Open, Closed, ... as reported by the ATS
    status = Column(String(50), default="Open")
    is_active = Column(Boolean, default=True, nullable=False)

    raw = Column(JSON, nullable=True)
    synced_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_jobs_tenant_external"),
    )

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, external_id={self.external_id}, title={self.title})>"


class Candidate(BaseModel):
    """Candidate mirrored from the ATS."""

    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    external_id = Column(String(100), nullable=False)

    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(100), nullable=True)
    status = Column(String(50), nullable=True)
    skills = Column(JSON, nullable=True)  # ["python", "sql", ...]
    resume_text = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Privacy
    data_usage_consent = Column(Boolean, default=False, nullable=False)
    consent_updated_at = Column(DateTime, nullable=True)

    raw = Column(JSON, nullable=True)
    synced_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_candidates_tenant_external"),
        Index("idx_candidates_email", "tenant_id", "email"),
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<Candidate(id={self.id}, external_id={self.external_id})>"
