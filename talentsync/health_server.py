"""Simple HTTP health server for processor container health checks."""

import asyncio
from typing import Callable, Optional

import structlog
from aiohttp import web

from talentsync.health import HealthProbe

logger = structlog.get_logger()

# Default port for health server
HEALTH_PORT = 8080


class HealthServer:
    """Lightweight HTTP server exposing the health probe.

    ``/health`` answers 200 unless the probe reports unhealthy (503).
    ``/health/live`` only proves the event loop is responsive.
    """

    def __init__(
        self,
        probe: HealthProbe,
        status_callback: Optional[Callable[[], dict]] = None,
        port: int = HEALTH_PORT,
    ):
        self.probe = probe
        self.status_callback = status_callback
        self.port = port
        self.app = web.Application()
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/health/live", self.live_handler)
        self.runner = None
        self.running = False

    async def health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests."""
        status = await self.probe.check()
        if self.status_callback:
            status["details"] = self.status_callback()
        code = 503 if status["status"] == "unhealthy" else 200
        return web.json_response(status, status=code)

    async def live_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "alive"})

    async def run(self) -> None:
        """Start the health server."""
        self.running = True
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Health server started", port=self.port)

        # Keep running until stopped
        while self.running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """Stop the health server."""
        self.running = False
        if self.runner:
            await self.runner.cleanup()
            logger.info("Health server stopped")
