"""Enrichment queue with exclusive, version-checked claims."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from talentsync.config import QueueConfig
from talentsync.models import EnrichmentQueueEntry
from talentsync.utils.time import utc_now

logger = structlog.get_logger()

ACTIVE_STATUSES = ("pending", "processing")

# How many pending rows to look at per claim attempt before giving up
CLAIM_BATCH = 10


@dataclass
class ClaimedEntry:
    """A queue entry claimed by one worker.

    ``lock_version`` is the claim token; finalising the entry requires it.
    """

    id: int
    tenant_id: str
    candidate_id: int
    priority: int
    retry_count: int
    lock_version: int
    payload: Optional[dict]
    created_at: datetime


class EnrichmentQueue:
    """Durable, priority-ordered work list of (candidate, tenant) pairs.

    There is one row per candidate. ``enqueue`` is an upsert, and every state
    transition is a conditional UPDATE, so two workers can never own the
    same entry.
    """

    def __init__(self, db: Session, config: QueueConfig):
        self.db = db
        self.max_retries = config.max_retries
        self.retry_base_delay = config.retry_base_delay

    def _find(self, tenant_id: str, candidate_id: int) -> Optional[EnrichmentQueueEntry]:
        return self.db.execute(
            select(EnrichmentQueueEntry)
            .where(
                EnrichmentQueueEntry.tenant_id == tenant_id,
                EnrichmentQueueEntry.candidate_id == candidate_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def enqueue(
        self,
        candidate_id: int,
        tenant_id: str,
        priority: int = 0,
        payload: Optional[dict] = None,
        reset: bool = False,
    ) -> EnrichmentQueueEntry:
        """Queue a candidate for enrichment.

        Args:
            candidate_id: Candidate to enrich
            tenant_id: Owning tenant
            priority: Higher = processed first (default 0)
            payload: Caller-supplied source material (resume_text, resume_url, profile)
            reset: Reopen an entry that ended in terminal failure

        Returns:
            The candidate's queue entry after the upsert
        """
        entry = self._find(tenant_id, candidate_id)

        if entry is None:
            entry = EnrichmentQueueEntry(
                tenant_id=tenant_id,
                candidate_id=candidate_id,
                status="pending",
                priority=priority,
                payload=payload,
                retry_count=0,
                lock_version=0,
                available_at=utc_now(),
            )
            self.db.add(entry)
            try:
                self.db.commit()
                logger.info(
                    "Enrichment enqueued",
                    entry_id=entry.id,
                    tenant_id=tenant_id,
                    candidate_id=candidate_id,
                    priority=priority,
                )
                return entry
            except IntegrityError:
                # Another writer inserted first; apply the upsert rules to its row
                self.db.rollback()
                entry = self._find(tenant_id, candidate_id)

        return self._merge(entry, priority, payload, reset)

    def _merge(
        self,
        entry: EnrichmentQueueEntry,
        priority: int,
        payload: Optional[dict],
        reset: bool,
    ) -> EnrichmentQueueEntry:
        table = EnrichmentQueueEntry
        now = utc_now()

        if entry.status in ACTIVE_STATUSES:
            # Raise priority only; never lower it
            self.db.execute(
                update(table)
                .where(
                    table.id == entry.id,
                    table.status.in_(ACTIVE_STATUSES),
                    table.priority < priority,
                )
                .values(priority=priority)
                .execution_options(synchronize_session=False)
            )
            if payload:
                self.db.execute(
                    update(table)
                    .where(table.id == entry.id, table.status == "pending")
                    .values(payload=payload)
                    .execution_options(synchronize_session=False)
                )
            self.db.commit()
            logger.debug(
                "Enrichment already queued",
                entry_id=entry.id,
                status=entry.status,
                priority=max(entry.priority, priority),
            )
            return self._find(entry.tenant_id, entry.candidate_id)

        if entry.status == "failed" and not reset:
            logger.info(
                "Enrichment entry failed terminally, reset required",
                entry_id=entry.id,
                candidate_id=entry.candidate_id,
                failure_reason=entry.failure_reason,
            )
            return entry

        # done -> re-enrichment, failed + reset -> reprocessing
        result = self.db.execute(
            update(table)
            .where(table.id == entry.id, table.status == entry.status)
            .values(
                status="pending",
                priority=priority,
                payload=payload if payload is not None else entry.payload,
                retry_count=0,
                last_error=None,
                failure_reason=None,
                available_at=now,
                claimed_at=None,
                completed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount == 0:
            # Status moved under us; re-read and re-apply
            refreshed = self._find(entry.tenant_id, entry.candidate_id)
            if refreshed is None:
                return self.enqueue(entry.candidate_id, entry.tenant_id, priority, payload, reset)
            return self._merge(refreshed, priority, payload, reset)

        logger.info(
            "Enrichment re-queued",
            entry_id=entry.id,
            previous_status=entry.status,
            candidate_id=entry.candidate_id,
            priority=priority,
        )
        return self._find(entry.tenant_id, entry.candidate_id)

    def _claim(self, entry_id: int, lock_version: int, now: datetime) -> bool:
        """Move one pending entry to processing if nobody touched it since it was read."""
        table = EnrichmentQueueEntry
        result = self.db.execute(
            update(table)
            .where(
                table.id == entry_id,
                table.status == "pending",
                table.lock_version == lock_version,
            )
            .values(
                status="processing",
                lock_version=table.lock_version + 1,
                claimed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def dequeue_next(self, now: Optional[datetime] = None) -> Optional[ClaimedEntry]:
        """Claim the highest-priority pending entry.

        Ties go to the oldest entry. The claim is an UPDATE conditioned on the
        status and lock_version read a moment earlier; losing the race just
        moves on to the next candidate row.

        Returns:
            The claimed entry, or None if nothing is ready
        """
        now = now or utc_now()
        table = EnrichmentQueueEntry

        rows = self.db.execute(
            select(table.id, table.lock_version)
            .where(table.status == "pending", table.available_at <= now)
            .order_by(table.priority.desc(), table.created_at.asc(), table.id.asc())
            .limit(CLAIM_BATCH)
        ).all()

        for row in rows:
            if not self._claim(row.id, row.lock_version, now):
                logger.debug("Lost claim race", entry_id=row.id)
                continue

            entry = self.db.get(table, row.id, populate_existing=True)
            logger.info(
                "Enrichment claimed",
                entry_id=entry.id,
                candidate_id=entry.candidate_id,
                attempt=entry.retry_count + 1,
            )
            return ClaimedEntry(
                id=entry.id,
                tenant_id=entry.tenant_id,
                candidate_id=entry.candidate_id,
                priority=entry.priority,
                retry_count=entry.retry_count,
                lock_version=entry.lock_version,
                payload=entry.payload,
                created_at=entry.created_at,
            )

        self.db.commit()
        return None

    def mark_done(self, entry_id: int, lock_version: int) -> bool:
        """Mark a claimed entry as done.

        Returns:
            False if the claim was lost (reclaimed or re-claimed elsewhere)
        """
        table = EnrichmentQueueEntry
        result = self.db.execute(
            update(table)
            .where(
                table.id == entry_id,
                table.status == "processing",
                table.lock_version == lock_version,
            )
            .values(
                status="done",
                completed_at=utc_now(),
                claimed_at=None,
                last_error=None,
                failure_reason=None,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount == 0:
            logger.warning("Stale claim on completion", entry_id=entry_id, lock_version=lock_version)
            return False

        logger.info("Enrichment completed", entry_id=entry_id)
        return True

    def mark_failed(
        self,
        entry_id: int,
        error: str,
        lock_version: int,
        retryable: bool = True,
        reason: Optional[str] = None,
    ) -> Optional[str]:
        """Record a failed attempt.

        The entry returns to pending with exponential backoff, or becomes
        terminal ``failed`` once retries are exhausted or the error is not
        retryable.

        Args:
            entry_id: Entry ID
            error: Error message
            lock_version: Claim token from dequeue_next
            retryable: False for errors that will not go away on retry
            reason: Failure reason recorded on terminal failure

        Returns:
            The new status, or None if the claim was lost
        """
        table = EnrichmentQueueEntry
        entry = self.db.get(table, entry_id, populate_existing=True)
        if entry is None or entry.status != "processing" or entry.lock_version != lock_version:
            logger.warning("Stale claim on failure", entry_id=entry_id, lock_version=lock_version)
            return None

        now = utc_now()
        retry_count = entry.retry_count + 1
        values = {
            "retry_count": retry_count,
            "last_error": error[:2000] if error else None,
            "claimed_at": None,
        }

        if not retryable or retry_count >= self.max_retries:
            values.update(
                status="failed",
                failure_reason=reason or ("max_retries_exceeded" if retryable else "permanent_error"),
                completed_at=now,
            )
        else:
            delay = self.retry_base_delay * (2 ** (retry_count - 1))
            values.update(status="pending", available_at=now + timedelta(seconds=delay))

        result = self.db.execute(
            update(table)
            .where(
                table.id == entry_id,
                table.status == "processing",
                table.lock_version == lock_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount == 0:
            logger.warning("Stale claim on failure", entry_id=entry_id, lock_version=lock_version)
            return None

        if values["status"] == "failed":
            logger.error(
                "Enrichment failed terminally",
                entry_id=entry_id,
                retry_count=retry_count,
                failure_reason=values["failure_reason"],
                error=error,
            )
        else:
            logger.warning(
                "Enrichment failed, will retry",
                entry_id=entry_id,
                retry_count=retry_count,
                available_at=values["available_at"].isoformat(),
                error=error,
            )
        return values["status"]

    def reclaim_stale(self, timeout_seconds: int, now: Optional[datetime] = None) -> int:
        """Return entries stuck in processing back to pending.

        One UPDATE, so each stale entry is reclaimed once per sweep. The
        original worker's lock_version no longer matches a processing row,
        which fences off its late completion.

        Returns:
            Number of entries reclaimed
        """
        now = now or utc_now()
        cutoff = now - timedelta(seconds=timeout_seconds)
        table = EnrichmentQueueEntry

        result = self.db.execute(
            update(table)
            .where(table.status == "processing", table.claimed_at < cutoff)
            .values(
                status="pending",
                claimed_at=None,
                available_at=now,
                last_error="Reclaimed after processing timeout",
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount:
            logger.warning("Reclaimed stale entries", count=result.rowcount, timeout_seconds=timeout_seconds)
        return result.rowcount

    def get_entry(self, tenant_id: str, candidate_id: int) -> Optional[EnrichmentQueueEntry]:
        return self._find(tenant_id, candidate_id)

    def status_counts(self, tenant_id: Optional[str] = None) -> Dict[str, int]:
        """Get queue counts by status."""
        query = select(EnrichmentQueueEntry.status, func.count(EnrichmentQueueEntry.id))
        if tenant_id:
            query = query.where(EnrichmentQueueEntry.tenant_id == tenant_id)
        rows = self.db.execute(query.group_by(EnrichmentQueueEntry.status)).all()
        counts = {status: 0 for status in ("pending", "processing", "done", "failed")}
        counts.update({status: count for status, count in rows})
        return counts

    def list_failed(self, tenant_id: str, limit: int = 50) -> List[EnrichmentQueueEntry]:
        return list(
            self.db.execute(
                select(EnrichmentQueueEntry)
                .where(
                    EnrichmentQueueEntry.tenant_id == tenant_id,
                    EnrichmentQueueEntry.status == "failed",
                )
                .order_by(EnrichmentQueueEntry.completed_at.desc())
                .limit(limit)
            ).scalars()
        )

    def clear_done(self, older_than: datetime) -> int:
        """Delete done entries completed before a cutoff."""
        result = self.db.execute(
            delete(EnrichmentQueueEntry).where(
                EnrichmentQueueEntry.status == "done",
                EnrichmentQueueEntry.completed_at < older_than,
            )
        )
        self.db.commit()
        if result.rowcount:
            logger.info("Cleared completed queue entries", count=result.rowcount)
        return result.rowcount
