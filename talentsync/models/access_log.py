"""Data access log model."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from talentsync.database import Base
from talentsync.utils.time import utc_now


class AccessLogEntry(Base):
    """
    Append-only record of every privileged read or write of candidate data.

    Rows are removed only once their own retain_until has passed.
    """

    __tablename__ = "data_access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False)
    candidate_id = Column(Integer, nullable=True)
    actor = Column(String(255), nullable=False)  # user id or "system:<component>"
    # view, score, enrich, export, delete
    access_type = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    accessed_at = Column(DateTime, default=utc_now, nullable=False)
    retain_until = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_access_logs_candidate", "tenant_id", "candidate_id"),
        Index("idx_access_logs_retain", "retain_until"),
    )

    def __repr__(self) -> str:
        return f"<AccessLogEntry(candidate_id={self.candidate_id}, type={self.access_type})>"
