"""Aggregate health of the store, the AI collaborator and ATS connectivity."""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.config import QueueConfig
from talentsync.database import SessionFactory, check_db_connection
from talentsync.models import ATSConnection
from talentsync.queue_manager import EnrichmentQueue

logger = structlog.get_logger()

AI_CHECK_TIMEOUT = 10.0


class HealthProbe:
    """Computes an overall status from component checks.

    The store being down makes the service unhealthy. An unreachable AI
    service, broken ATS connections or open circuits make it degraded.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        ai_check: Optional[Callable[[], Awaitable[bool]]] = None,
        ats_client: Optional[JobAdderClient] = None,
        version: str = "",
    ):
        self.session_factory = session_factory
        self.ai_check = ai_check
        self.ats_client = ats_client
        self.version = version

    def check_database(self) -> Dict[str, object]:
        db = self.session_factory()
        try:
            if not check_db_connection(db):
                return {"status": "disconnected"}
            return {"status": "connected", "queue": EnrichmentQueue(db, QueueConfig()).status_counts()}
        except SQLAlchemyError as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "disconnected", "error": str(e)}
        finally:
            db.close()

    async def check_ai(self) -> Dict[str, object]:
        if self.ai_check is None:
            return {"status": "not_configured"}
        try:
            ok = await asyncio.wait_for(self.ai_check(), timeout=AI_CHECK_TIMEOUT)
        except asyncio.TimeoutError:
            return {"status": "unreachable", "error": "timeout"}
        return {"status": "reachable" if ok else "unreachable"}

    def check_ats(self) -> Dict[str, object]:
        db = self.session_factory()
        try:
            broken = list(
                db.execute(
                    select(ATSConnection.tenant_id).where(ATSConnection.status == "broken").order_by(ATSConnection.tenant_id)
                ).scalars()
            )
        except SQLAlchemyError as e:
            logger.error("ATS health check failed", error=str(e))
            broken = []
        finally:
            db.close()

        circuits = self.ats_client.circuit_states() if self.ats_client else {}
        open_circuits = sorted(t for t, state in circuits.items() if state != "closed")
        status = "degraded" if broken or open_circuits else "ok"
        return {"status": status, "broken_connections": broken, "open_circuits": open_circuits}

    async def check(self) -> Dict[str, object]:
        """Run every check and derive the overall status."""
        database = self.check_database()
        ai = await self.check_ai()
        ats = self.check_ats()

        if database["status"] != "connected":
            overall = "unhealthy"
        elif ai["status"] == "unreachable" or ats["status"] != "ok":
            overall = "degraded"
        else:
            overall = "healthy"

        return {
            "status": overall,
            "version": self.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {"database": database, "ai": ai, "ats": ats},
        }
