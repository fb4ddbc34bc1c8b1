"""API endpoints for TalentSync."""

from fastapi import APIRouter

from .benchmarks import router as benchmarks_router
from .candidates import router as candidates_router
from .cron import router as cron_router
from .events import router as events_router
from .health import router as health_router
from .oauth import router as oauth_router
from .queue import router as queue_router
from .webhooks import router as webhooks_router

# Create main API router
api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["Health"])
api_router.include_router(candidates_router, prefix="/candidates", tags=["Candidates"])
api_router.include_router(queue_router, prefix="/queue", tags=["Queue"])
api_router.include_router(benchmarks_router, prefix="/benchmarks", tags=["Benchmarks"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
api_router.include_router(oauth_router, prefix="/oauth", tags=["OAuth"])
api_router.include_router(events_router, prefix="/events", tags=["Events"])
api_router.include_router(cron_router, prefix="/cron", tags=["Cron"])

__all__ = ["api_router"]
