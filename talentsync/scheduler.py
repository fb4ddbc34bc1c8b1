"""Scheduler for periodic sweeps: ATS sync, correlation and retention."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from talentsync.config import QueueConfig, RetentionConfig, SchedulerConfig
from talentsync.correlator import EventCorrelator, SweepReport
from talentsync.database import SessionFactory
from talentsync.errors import AuthError, ExternalApiError
from talentsync.models import ATSConnection, Tenant
from talentsync.processors.sync import SyncProcessor, SyncStats
from talentsync.services.retention import run_retention_sweep

logger = structlog.get_logger()

CorrelatorFactory = Callable[[Session], EventCorrelator]
SyncFactory = Callable[[Session], SyncProcessor]


class Scheduler:
    """Runs each periodic task when its interval has elapsed."""

    def __init__(
        self,
        session_factory: SessionFactory,
        config: SchedulerConfig,
        correlator_factory: CorrelatorFactory,
        retention: RetentionConfig,
        queue_config: QueueConfig,
        sync_factory: Optional[SyncFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize scheduler.

        Args:
            session_factory: Factory function that creates new DB sessions
            config: Loop interval and per-task cadence
            correlator_factory: Builds an EventCorrelator bound to a session
            retention: Retention windows for the purge task
            queue_config: Queue settings for clearing finished entries
            sync_factory: Builds a SyncProcessor; None disables ATS sync
            clock: Monotonic clock, injectable for tests
        """
        self.session_factory = session_factory
        self.config = config
        self.correlator_factory = correlator_factory
        self.sync_factory = sync_factory
        self.retention = retention
        self.queue_config = queue_config
        self.clock = clock
        self.running = False
        self.last_run: Optional[datetime] = None
        self._last_task_run: Dict[str, float] = {}

    async def run(self) -> None:
        """Main scheduler loop."""
        self.running = True
        logger.info("Scheduler started", interval=self.config.interval)

        while self.running:
            try:
                await self.check_for_work()
                self.last_run = datetime.now(timezone.utc)
            except Exception as e:
                logger.error("Scheduler error", error=str(e), exc_info=True)

            await asyncio.sleep(self.config.interval)

        logger.info("Scheduler stopped")

    async def stop(self) -> None:
        """Stop the scheduler."""
        self.running = False

    def _due(self, task: str, interval_minutes: int) -> bool:
        now = self.clock()
        last = self._last_task_run.get(task)
        if last is not None and now - last < interval_minutes * 60:
            return False
        self._last_task_run[task] = now
        return True

    async def check_for_work(self) -> None:
        """Run whichever tasks are due."""
        logger.debug("Checking for work")

        if self.sync_factory is not None and self._due("sync", self.config.sync_interval_minutes):
            await self.run_syncs()

        if self._due("correlate", self.config.correlator_interval_minutes):
            await self.run_correlation()

        if self._due("retention", self.config.retention_interval_minutes):
            self.run_retention()

    def _tenant_ids(self, connected_only: bool = False) -> List[str]:
        db = self.session_factory()
        try:
            query = select(Tenant.id).where(Tenant.is_active.is_(True))
            if connected_only:
                query = query.join(ATSConnection, ATSConnection.tenant_id == Tenant.id).where(
                    ATSConnection.status == "connected"
                )
            return list(db.execute(query.order_by(Tenant.id)).scalars())
        finally:
            db.close()

    async def run_correlation(self) -> List[SweepReport]:
        """Sweep every active tenant for abandoned applications."""
        reports = []
        for tenant_id in self._tenant_ids():
            db = self.session_factory()
            try:
                reports.append(await self.correlator_factory(db).sweep(tenant_id))
            finally:
                db.close()
        return reports

    async def run_syncs(self) -> Dict[str, SyncStats]:
        """Incremental ATS sync for every connected tenant.

        A tenant whose sync fails is logged and skipped; the others still run.
        """
        results = {}
        for tenant_id in self._tenant_ids(connected_only=True):
            db = self.session_factory()
            try:
                results[tenant_id] = await self.sync_factory(db).sync_tenant(tenant_id)
            except AuthError as e:
                logger.warning("ATS sync skipped, connection unusable", tenant_id=tenant_id, reason=e.reason)
            except ExternalApiError as e:
                logger.error("ATS sync failed", tenant_id=tenant_id, error=str(e), kind=e.kind)
            finally:
                db.close()
        return results

    def run_retention(self) -> Dict[str, int]:
        db = self.session_factory()
        try:
            return run_retention_sweep(db, self.retention, self.queue_config)
        finally:
            db.close()

    def get_status(self) -> dict:
        """Get scheduler status."""
        return {
            "running": self.running,
            "interval": self.config.interval,
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }
