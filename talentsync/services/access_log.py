"""Append-only audit log of candidate data access."""

from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from talentsync.config import RetentionConfig
from talentsync.models import AccessLogEntry
from talentsync.utils.time import utc_now

logger = structlog.get_logger()

ACCESS_TYPES = ("view", "score", "enrich", "export", "delete")


class AccessLogService:
    """Records who read or changed which candidate's data, and when."""

    def __init__(self, db: Session, retention: RetentionConfig):
        self.db = db
        self.retention_days = retention.access_log_retention_days

    def record(
        self,
        tenant_id: str,
        candidate_id: Optional[int],
        actor: str,
        access_type: str,
        reason: Optional[str] = None,
        commit: bool = True,
    ) -> AccessLogEntry:
        """Append an access log row.

        Args:
            tenant_id: Tenant owning the candidate
            candidate_id: Candidate whose data was accessed
            actor: User id, or "system:<component>" for background work
            access_type: One of view, score, enrich, export, delete
            reason: Free-text justification
            commit: Commit immediately; pass False to join the caller's transaction
        """
        if access_type not in ACCESS_TYPES:
            raise ValueError(f"Unknown access type: {access_type}")

        now = utc_now()
        entry = AccessLogEntry(
            tenant_id=tenant_id,
            candidate_id=candidate_id,
            actor=actor,
            access_type=access_type,
            reason=reason,
            accessed_at=now,
            retain_until=now + timedelta(days=self.retention_days),
        )
        self.db.add(entry)
        if commit:
            self.db.commit()

        logger.debug(
            "Data access logged",
            tenant_id=tenant_id,
            candidate_id=candidate_id,
            actor=actor,
            access_type=access_type,
        )
        return entry

    def list_for_candidate(self, tenant_id: str, candidate_id: int) -> List[AccessLogEntry]:
        return list(
            self.db.execute(
                select(AccessLogEntry)
                .where(
                    AccessLogEntry.tenant_id == tenant_id,
                    AccessLogEntry.candidate_id == candidate_id,
                )
                .order_by(AccessLogEntry.accessed_at.asc(), AccessLogEntry.id.asc())
            ).scalars()
        )

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete rows whose own retention window has passed."""
        now = now or utc_now()
        result = self.db.execute(delete(AccessLogEntry).where(AccessLogEntry.retain_until < now))
        self.db.commit()
        if result.rowcount:
            logger.info("Purged expired access log entries", count=result.rowcount)
        return result.rowcount
