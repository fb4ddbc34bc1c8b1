"""Health check endpoints for monitoring."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from talentsync.health import HealthProbe

from talentsync_api.config import ApiSettings
from talentsync_api.dependencies import ApiServices, get_services, get_settings

logger = structlog.get_logger()
router = APIRouter()


def get_probe(
    services: ApiServices = Depends(get_services),
    settings: ApiSettings = Depends(get_settings),
) -> HealthProbe:
    return HealthProbe(
        services.session_factory,
        ai_check=services.ai_check,
        ats_client=services.ats_client,
        version=settings.APP_VERSION,
    )


@router.get("")
@router.get("/")
async def health_check(probe: HealthProbe = Depends(get_probe)):
    """
    Aggregate health of the store, the AI service and ATS connectivity.

    Degraded components still answer 200; only a lost database is 503.
    """
    status = await probe.check()
    return JSONResponse(status_code=503 if status["status"] == "unhealthy" else 200, content=status)


@router.get("/ready")
async def readiness_check(probe: HealthProbe = Depends(get_probe)):
    """
    Kubernetes readiness probe.

    Returns 200 if service is ready to accept traffic.
    """
    database = probe.check_database()
    if database["status"] != "connected":
        return JSONResponse(status_code=503, content={"ready": False, "reason": "Database not connected"})
    return {"ready": True}


@router.get("/live")
async def liveness_check() -> dict:
    """
    Kubernetes liveness probe.

    Returns 200 if service process is alive.
    """
    return {"alive": True}
