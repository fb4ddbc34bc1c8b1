"""Candidate enrichment record model."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from talentsync.models.base import BaseModel


class CandidateEnrichmentRecord(BaseModel):
    """
    AI-derived attributes and benchmark scores for one candidate.

    One row per (candidate, tenant). Re-enrichment updates in place.
    A record with deleted_at set is treated as absent.
    """

    __tablename__ = "candidate_enrichments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    candidate_id = Column(Integer, ForeignKey("candidates.id"), nullable=False)

    # Validated EnrichmentProfile as JSON
    enrichment = Column(JSON, nullable=True)
    confidence_score = Column(Float, nullable=True)

    # Latest scoring
    benchmark_scores = Column(JSON, nullable=True)  # {template_id: BenchmarkResult}
    overall_score = Column(Float, nullable=True)
    tier = Column(String(20), nullable=True)
    strengths = Column(JSON, nullable=True)
    development_areas = Column(JSON, nullable=True)

    # Privacy
    data_usage_consent = Column(Boolean, default=False, nullable=False)
    data_retention_date = Column(DateTime, nullable=False)

    enriched_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("candidate_id", "tenant_id", name="uq_enrichment_candidate_tenant"),
    )

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None and self.enrichment is not None

    def __repr__(self) -> str:
        return f"<CandidateEnrichmentRecord(candidate_id={self.candidate_id}, tier={self.tier})>"
