"""Main entry point for the processor service."""

import asyncio
import signal
import sys
from typing import List

import httpx
import structlog

from talentsync import __version__
from talentsync.ats.jobadder.auth import TokenManager
from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.config import ProcessorSettings, get_settings
from talentsync.correlator import EventCorrelator
from talentsync.database import create_engine_from_url, create_session_factory
from talentsync.health import HealthProbe
from talentsync.health_server import HealthServer
from talentsync.integrations.claude import ClaudeAnalyzer
from talentsync.integrations.ses import SESNotifier
from talentsync.logging import configure_logging
from talentsync.processors.enrich import EnrichmentProcessor
from talentsync.processors.sync import SyncProcessor
from talentsync.queue_manager import EnrichmentQueue
from talentsync.scheduler import Scheduler
from talentsync.services.encryption import TokenCipher
from talentsync.worker import Worker

logger = structlog.get_logger()


class ProcessorService:
    """Main processor service orchestrating worker, scheduler, and health server.

    Every collaborator is built here from settings and handed to the
    components that need it.
    """

    def __init__(self, settings: ProcessorSettings):
        self.settings = settings
        self.engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        self.session_factory = create_session_factory(self.engine)

        queue_config = settings.queue_config()
        worker_config = settings.worker_config()
        retention = settings.retention_config()
        jobadder_config = settings.jobadder_config()

        cipher = TokenCipher(settings.ENCRYPTION_KEY, settings.ENVIRONMENT)
        self.tokens = TokenManager(self.session_factory, jobadder_config, cipher)
        self.ats_client = JobAdderClient(jobadder_config, self.tokens)
        self.analyzer = ClaudeAnalyzer(settings.claude_config())
        self.notifier = SESNotifier(settings.ses_config())
        self.http_client = httpx.AsyncClient(timeout=30.0, follow_redirects=True)

        correlator_config = settings.correlator_config()

        self.worker = Worker(
            self.session_factory,
            lambda db, queue: EnrichmentProcessor(
                db,
                queue,
                self.analyzer,
                retention,
                ats_client=self.ats_client,
                http_client=self.http_client,
                malformed_retries=worker_config.malformed_retries,
            ),
            worker_config,
            queue_config,
        )
        self.scheduler = Scheduler(
            self.session_factory,
            settings.scheduler_config(),
            correlator_factory=lambda db: EventCorrelator(db, self.notifier, correlator_config),
            retention=retention,
            queue_config=queue_config,
            sync_factory=lambda db: SyncProcessor(db, EnrichmentQueue(db, queue_config), self.ats_client),
        )
        self.health_server = HealthServer(
            HealthProbe(
                self.session_factory,
                ai_check=self.analyzer.ping if settings.ANTHROPIC_API_KEY else None,
                ats_client=self.ats_client,
                version=__version__,
            ),
            status_callback=self._get_status,
            port=settings.HEALTH_PORT,
        )
        self.running = False
        self.tasks: List[asyncio.Task] = []

    def _get_status(self) -> dict:
        """Get combined status for the health server."""
        return {
            "worker": self.worker.get_status(),
            "scheduler": self.scheduler.get_status(),
        }

    async def start(self) -> None:
        """Start all processor components."""
        self.running = True
        logger.info("Starting processor service")

        # Start components as tasks
        self.tasks = [
            asyncio.create_task(self.worker.run(), name="worker"),
            asyncio.create_task(self.health_server.run(), name="health"),
        ]

        # Only start scheduler if enabled
        if self.settings.SCHEDULER_ENABLED:
            self.tasks.append(asyncio.create_task(self.scheduler.run(), name="scheduler"))
        else:
            logger.info("Scheduler disabled by configuration")

        logger.info(
            "Processor service started",
            components=[t.get_name() for t in self.tasks],
        )

        # Wait for all tasks
        try:
            await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            logger.info("Tasks cancelled")

    async def stop(self) -> None:
        """Stop all processor components gracefully."""
        logger.info("Stopping processor service")
        self.running = False

        await asyncio.gather(
            self.worker.stop(),
            self.scheduler.stop(),
            self.health_server.stop(),
        )

        # Cancel any remaining tasks
        for task in self.tasks:
            if not task.done():
                task.cancel()

        await self.ats_client.close()
        await self.http_client.aclose()
        self.engine.dispose()

        logger.info("Processor service stopped")


async def main() -> None:
    """Main entry point."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, service="talentsync-processor")
    service = ProcessorService(settings)

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        await service.stop()
    except Exception as e:
        logger.error("Processor service error", error=str(e), exc_info=True)
        await service.stop()
        sys.exit(1)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
