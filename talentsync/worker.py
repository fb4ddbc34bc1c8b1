"""Worker that executes enrichment entries from the queue."""

import asyncio
import time
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from talentsync.config import QueueConfig, WorkerConfig
from talentsync.database import SessionFactory
from talentsync.errors import ConsentRequired, TalentSyncError, is_retryable
from talentsync.processors.enrich import EnrichmentProcessor
from talentsync.queue_manager import ClaimedEntry, EnrichmentQueue

logger = structlog.get_logger()

ProcessorFactory = Callable[[Session, EnrichmentQueue], EnrichmentProcessor]


class Worker:
    """Executes queue entries with concurrency control.

    Uses a session factory to create fresh sessions per entry to avoid
    concurrency issues with shared sessions.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        processor_factory: ProcessorFactory,
        config: WorkerConfig,
        queue_config: QueueConfig,
    ):
        """Initialize worker.

        Args:
            session_factory: Factory function that creates new DB sessions
            processor_factory: Builds an EnrichmentProcessor bound to a session
            config: Concurrency, polling and stale-reclaim settings
            queue_config: Retry policy for the queue
        """
        self.session_factory = session_factory
        self.processor_factory = processor_factory
        self.config = config
        self.queue_config = queue_config
        self.running = False
        self.active_entries: Dict[int, asyncio.Task] = {}
        self._last_maintenance = 0.0

    def _queue(self, db: Session) -> EnrichmentQueue:
        return EnrichmentQueue(db, self.queue_config)

    async def process_entry(self, entry: ClaimedEntry) -> Optional[str]:
        """Process a single claimed entry with its own database session.

        Returns:
            The entry's new status, or None if the claim was lost meanwhile
        """
        db = self.session_factory()
        try:
            queue = self._queue(db)
            processor = self.processor_factory(db, queue)

            logger.info(
                "Processing entry",
                entry_id=entry.id,
                tenant_id=entry.tenant_id,
                candidate_id=entry.candidate_id,
                retry_count=entry.retry_count,
            )

            try:
                await processor.process(entry)
            except ConsentRequired as e:
                db.rollback()
                logger.info("Enrichment skipped without consent", entry_id=entry.id, candidate_id=entry.candidate_id)
                return queue.mark_failed(
                    entry.id, str(e), entry.lock_version, retryable=False, reason="ConsentRequired"
                )
            except Exception as e:
                db.rollback()
                retryable = is_retryable(e)
                logger.error(
                    "Entry failed",
                    entry_id=entry.id,
                    candidate_id=entry.candidate_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    retryable=retryable,
                    exc_info=not isinstance(e, TalentSyncError),
                )
                return queue.mark_failed(
                    entry.id, str(e), entry.lock_version, retryable=retryable, reason=type(e).__name__
                )

            return "done" if queue.mark_done(entry.id, entry.lock_version) else None

        finally:
            # Always close the session
            db.close()
            self.active_entries.pop(entry.id, None)

    def claim_next(self) -> Optional[ClaimedEntry]:
        db = self.session_factory()
        try:
            return self._queue(db).dequeue_next()
        finally:
            db.close()

    async def run_once(self) -> Optional[str]:
        """Claim and process one entry inline.

        Returns:
            The processed entry's new status, or None if nothing was claimable
        """
        entry = self.claim_next()
        if entry is None:
            return None
        return await self.process_entry(entry)

    async def run(self) -> None:
        """Main worker loop."""
        self.running = True
        self._last_maintenance = 0.0

        logger.info(
            "Worker started",
            max_concurrency=self.config.max_concurrency,
            poll_interval=self.config.poll_interval,
        )

        while self.running:
            # Clean up completed tasks
            for entry_id in [eid for eid, task in self.active_entries.items() if task.done()]:
                del self.active_entries[entry_id]

            now = time.monotonic()
            if now - self._last_maintenance > self.config.maintenance_interval:
                self._last_maintenance = now
                await self.run_maintenance()

            if len(self.active_entries) >= self.config.max_concurrency:
                await asyncio.sleep(1)
                continue

            entry = self.claim_next()
            if entry is None:
                await asyncio.sleep(self.config.poll_interval)
                continue

            # Start processing in background
            self.active_entries[entry.id] = asyncio.create_task(self.process_entry(entry))

        logger.info("Worker stopped")

    async def run_maintenance(self) -> int:
        """Return stale processing entries to pending."""
        db = self.session_factory()
        try:
            return self._queue(db).reclaim_stale(self.config.stale_timeout)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Maintenance task failed", error=str(e))
            return 0
        finally:
            db.close()

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop the worker, giving active entries ``timeout`` seconds to finish.

        Entries still running after that are cancelled; they stay in
        processing until stale reclaim returns them to the queue.
        """
        self.running = False

        tasks = list(self.active_entries.values())
        if tasks:
            logger.info("Waiting for active entries to complete", count=len(tasks))
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("Cancelled unfinished entries", count=len(pending))

        logger.info("Worker shutdown complete")

    def get_status(self) -> dict:
        """Get worker status."""
        db = self.session_factory()
        try:
            queue_status = self._queue(db).status_counts()
        finally:
            db.close()

        return {
            "running": self.running,
            "active_entries": len(self.active_entries),
            "max_concurrency": self.config.max_concurrency,
            "queue_status": queue_status,
        }
