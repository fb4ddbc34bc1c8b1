"""FastAPI dependencies: sessions, tenant scoping and injected collaborators."""

import hmac
from dataclasses import dataclass
from typing import Awaitable, Callable, Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from talentsync.ats.jobadder.auth import TokenManager
from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.benchmark.engine import evaluate
from talentsync.database import SessionFactory
from talentsync.errors import TenantNotFoundError
from talentsync.integrations.ses import Notifier
from talentsync.models import Tenant
from talentsync.queue_manager import EnrichmentQueue
from talentsync.services import EnrichmentService, TokenCipher
from talentsync.services.enrichment import Evaluator

from talentsync_api.config import ApiSettings
from talentsync_api.middleware.error_handler import UnauthorizedError


@dataclass
class ApiServices:
    """Long-lived collaborators shared by every request."""

    session_factory: SessionFactory
    cipher: TokenCipher
    tokens: TokenManager
    ats_client: JobAdderClient
    notifier: Notifier
    ai_check: Optional[Callable[[], Awaitable[bool]]] = None


def get_settings(request: Request) -> ApiSettings:
    return request.app.state.settings


def get_services(request: Request) -> ApiServices:
    return request.app.state.services


def get_db(services: ApiServices = Depends(get_services)) -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            ...
    """
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_tenant_id(
    x_tenant_id: str = Header(..., alias="X-Tenant-ID"),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the calling tenant; unknown or inactive tenants are rejected."""
    tenant = db.get(Tenant, x_tenant_id)
    if tenant is None or not tenant.is_active:
        raise TenantNotFoundError(f"Tenant {x_tenant_id} not found")
    return tenant.id


def require_cron_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    settings: ApiSettings = Depends(get_settings),
) -> None:
    """Guard for external-scheduler endpoints."""
    expected = settings.CRON_API_KEY
    if not expected or not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise UnauthorizedError()


def get_evaluator() -> Evaluator:
    """The benchmark engine used for scoring; overridden in tests."""
    return evaluate


def get_queue(db: Session = Depends(get_db), settings: ApiSettings = Depends(get_settings)) -> EnrichmentQueue:
    return EnrichmentQueue(db, settings.queue_config())


def get_enrichment_service(
    db: Session = Depends(get_db),
    settings: ApiSettings = Depends(get_settings),
    evaluator: Evaluator = Depends(get_evaluator),
) -> EnrichmentService:
    return EnrichmentService(db, settings.retention_config(), evaluator=evaluator)
