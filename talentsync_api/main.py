"""
TalentSync API - FastAPI Application

Main entry point for the API server.
Run with: uvicorn talentsync_api.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from talentsync.ats.jobadder.auth import TokenManager
from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.database import create_engine_from_url, create_session_factory, init_db
from talentsync.integrations.claude import ClaudeAnalyzer
from talentsync.integrations.ses import SESNotifier
from talentsync.logging import configure_logging
from talentsync.services import TokenCipher

from talentsync_api.config import ApiSettings, get_api_settings
from talentsync_api.dependencies import ApiServices
from talentsync_api.endpoints import api_router
from talentsync_api.middleware import LoggingMiddleware, setup_exception_handlers

logger = structlog.get_logger()


def build_services(settings: ApiSettings) -> ApiServices:
    """Build the shared collaborators from settings."""
    engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    session_factory = create_session_factory(engine)
    jobadder_config = settings.jobadder_config()

    # Fails fast in production if the key is missing
    cipher = TokenCipher(settings.ENCRYPTION_KEY, settings.ENVIRONMENT)
    tokens = TokenManager(session_factory, jobadder_config, cipher)
    analyzer = ClaudeAnalyzer(settings.claude_config()) if settings.ANTHROPIC_API_KEY else None

    return ApiServices(
        session_factory=session_factory,
        cipher=cipher,
        tokens=tokens,
        ats_client=JobAdderClient(jobadder_config, tokens),
        notifier=SESNotifier(settings.ses_config()),
        ai_check=analyzer.ping if analyzer else None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    settings: ApiSettings = app.state.settings
    services: ApiServices = app.state.services
    logger.info(
        "Starting TalentSync API",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
    )

    # Initialize database tables (in dev mode)
    if settings.DEBUG:
        logger.info("Initializing database tables (DEBUG mode)")
        session = services.session_factory()
        try:
            init_db(session.get_bind())
        finally:
            session.close()

    yield

    logger.info("Shutting down TalentSync API")
    await services.ats_client.close()


def create_app(settings: Optional[ApiSettings] = None, services: Optional[ApiServices] = None) -> FastAPI:
    """Build the application; tests pass their own settings and collaborators."""
    settings = settings or get_api_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="ATS sync, candidate enrichment and event correlation",
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        openapi_url="/api/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services or build_services(settings)

    setup_exception_handlers(app)

    # Add CORS middleware (outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.include_router(api_router, prefix="/api/v1")

    # Root health endpoint (for ALB)
    @app.get("/health")
    async def root_health():
        """Simple health check for load balancer."""
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


def run() -> None:
    import uvicorn

    settings = get_api_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, service="talentsync-api")
    uvicorn.run(
        "talentsync_api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
