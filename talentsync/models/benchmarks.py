"""Benchmark template model."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text

from talentsync.models.base import BaseModel


class BenchmarkTemplate(BaseModel):
    """
    Weighted scoring template.

    Tenant-owned, or public (visible to every tenant). Once a stored score
    references a template (referenced_at set) it is immutable; changes
    produce a new version row pointing back through parent_id.
    """

    __tablename__ = "benchmark_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=True)
    is_public = Column(Boolean, default=False, nullable=False)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    industry = Column(String(100), nullable=True)
    role_level = Column(String(50), nullable=True)

    # Validated by talentsync.schemas.benchmarks on write
    skill_weights = Column(JSON, nullable=False)
    experience_weights = Column(JSON, nullable=False)
    scoring_rules = Column(JSON, nullable=False)

    version = Column(Integer, default=1, nullable=False)
    parent_id = Column(Integer, ForeignKey("benchmark_templates.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    referenced_at = Column(DateTime, nullable=True)
    created_by = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_templates_tenant", "tenant_id", "is_active"),
    )

    @property
    def is_locked(self) -> bool:
        return self.referenced_at is not None

    def __repr__(self) -> str:
        return f"<BenchmarkTemplate(id={self.id}, name={self.name}, version={self.version})>"
