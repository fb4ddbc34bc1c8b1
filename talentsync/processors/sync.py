"""Sync processor for JobAdder job and candidate sync."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.errors import AuthError, MalformedResponseError
from talentsync.models import ATSConnection
from talentsync.processors.base import BaseProcessor
from talentsync.queue_manager import EnrichmentQueue
from talentsync.services.records import upsert_candidate, upsert_job
from talentsync.utils.time import utc_now

PAGE_SIZE = 100


@dataclass
class SyncStats:
    total: int = 0
    created: int = 0
    updated: int = 0
    enqueued: int = 0
    privacy_filtered: int = 0
    errors: int = 0
    jobs: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class SyncProcessor(BaseProcessor):
    """Pulls a tenant's jobs and changed candidates from JobAdder.

    Candidates are upserted whatever their consent; only consenting ones are
    queued for enrichment.
    """

    name = "sync"

    def __init__(self, db: Session, queue: EnrichmentQueue, client: JobAdderClient, page_size: int = PAGE_SIZE):
        super().__init__(db, queue)
        self.client = client
        self.page_size = page_size

    def _connection(self, tenant_id: str) -> Optional[ATSConnection]:
        return self.db.execute(
            select(ATSConnection).where(ATSConnection.tenant_id == tenant_id)
        ).scalar_one_or_none()

    async def sync_tenant(self, tenant_id: str, full: bool = False) -> SyncStats:
        """Sync jobs, then candidates changed since the last successful sync.

        Args:
            tenant_id: Tenant to sync
            full: Ignore last_synced_at and pull every candidate

        Raises:
            AuthError: The tenant's ATS connection is missing or broken
        """
        connection = self._connection(tenant_id)
        if connection is None or not connection.is_connected:
            raise AuthError(tenant_id)

        started_at = utc_now()
        since = None if full else connection.last_synced_at
        stats = SyncStats()

        self.logger.info("Starting ATS sync", tenant_id=tenant_id, since=since.isoformat() if since else None)

        await self._sync_jobs(tenant_id, stats)
        complete = await self._sync_candidates(tenant_id, since, stats)

        if complete:
            connection.last_synced_at = started_at
            self.db.commit()

        self.logger.info("ATS sync completed", tenant_id=tenant_id, **stats.to_dict())
        return stats

    def _count_malformed(self, tenant_id: str, kind: str, errors: List[str], stats: SyncStats) -> None:
        for error in errors:
            stats.errors += 1
            self.logger.warning("Malformed ATS record skipped", tenant_id=tenant_id, kind=kind, error=error)

    async def _sync_jobs(self, tenant_id: str, stats: SyncStats) -> None:
        offset = 0
        while True:
            try:
                page = await self.client.get_jobs(tenant_id, limit=self.page_size, offset=offset)
            except MalformedResponseError as e:
                stats.errors += 1
                self.logger.error("Malformed job page", tenant_id=tenant_id, offset=offset, error=str(e))
                return

            self._count_malformed(tenant_id, "job", page.errors, stats)
            for ats_job in page.records:
                try:
                    upsert_job(self.db, tenant_id, ats_job)
                    self.db.commit()
                    stats.jobs += 1
                except SQLAlchemyError as e:
                    self.db.rollback()
                    stats.errors += 1
                    self.logger.error("Job upsert failed", tenant_id=tenant_id, external_id=ats_job.external_id, error=str(e))
            if page.size < self.page_size:
                return
            offset += self.page_size

    async def _sync_candidates(self, tenant_id: str, since: Optional[datetime], stats: SyncStats) -> bool:
        """Page through changed candidates. Returns False if paging was cut short."""
        updated_since = since.isoformat() + "Z" if since else None
        offset = 0
        while True:
            try:
                page = await self.client.get_candidates(
                    tenant_id, updated_since=updated_since, limit=self.page_size, offset=offset
                )
            except MalformedResponseError as e:
                # Leave last_synced_at alone so the next run re-reads this range
                stats.errors += 1
                self.logger.error("Malformed candidate page", tenant_id=tenant_id, offset=offset, error=str(e))
                return False

            self._count_malformed(tenant_id, "candidate", page.errors, stats)
            stats.total += len(page.errors)
            for ats_candidate in page.records:
                stats.total += 1
                try:
                    candidate, created = upsert_candidate(self.db, tenant_id, ats_candidate)
                    self.db.commit()
                except SQLAlchemyError as e:
                    self.db.rollback()
                    stats.errors += 1
                    self.logger.error(
                        "Candidate upsert failed",
                        tenant_id=tenant_id,
                        external_id=ats_candidate.external_id,
                        error=str(e),
                    )
                    continue

                if created:
                    stats.created += 1
                else:
                    stats.updated += 1

                if not candidate.data_usage_consent:
                    stats.privacy_filtered += 1
                    continue
                self.enqueue_enrichment(tenant_id, candidate.id, priority=0)
                stats.enqueued += 1

            if page.size < self.page_size:
                return True
            offset += self.page_size
