"""Entry points for an external scheduler.

Each call runs one pass of a periodic task, the same pass the processor's
own scheduler runs.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from talentsync.correlator import EventCorrelator
from talentsync.errors import TenantNotFoundError
from talentsync.models import Tenant
from talentsync.queue_manager import EnrichmentQueue
from talentsync.services.retention import run_retention_sweep

from talentsync_api.config import ApiSettings
from talentsync_api.dependencies import ApiServices, get_db, get_services, get_settings, require_cron_key

logger = structlog.get_logger()
router = APIRouter(dependencies=[Depends(require_cron_key)])


@router.post("/correlate")
async def correlate(
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    db: Session = Depends(get_db),
    services: ApiServices = Depends(get_services),
    settings: ApiSettings = Depends(get_settings),
):
    """Sweep one tenant, or every active tenant, for abandoned applications."""
    query = select(Tenant.id).where(Tenant.is_active.is_(True))
    if tenant_id:
        query = query.where(Tenant.id == tenant_id)
    tenant_ids = list(db.execute(query.order_by(Tenant.id)).scalars())
    if tenant_id and not tenant_ids:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found")

    correlator = EventCorrelator(db, services.notifier, settings.correlator_config())
    reports = [(await correlator.sweep(t)).to_dict() for t in tenant_ids]
    return {"tenants": len(reports), "reports": reports}


@router.post("/reclaim")
async def reclaim(
    db: Session = Depends(get_db),
    settings: ApiSettings = Depends(get_settings),
):
    """Return stale processing entries to pending."""
    count = EnrichmentQueue(db, settings.queue_config()).reclaim_stale(settings.QUEUE_STALE_TIMEOUT)
    return {"reclaimed": count}


@router.post("/retention")
async def retention(
    db: Session = Depends(get_db),
    settings: ApiSettings = Depends(get_settings),
):
    """Apply every retention rule once."""
    return run_retention_sweep(db, settings.retention_config(), settings.queue_config())
