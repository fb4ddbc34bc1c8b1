"""JobAdder OAuth connection flow."""

import secrets
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from talentsync.errors import AuthError, ExternalApiError, TenantNotFoundError
from talentsync.models import ATSConnection, Tenant

from talentsync_api.config import ApiSettings
from talentsync_api.dependencies import ApiServices, get_db, get_services, get_settings

logger = structlog.get_logger()
router = APIRouter()


def _admin_redirect(settings: ApiSettings, tenant_id: str, **params: str) -> RedirectResponse:
    query = urlencode(params)
    return RedirectResponse(f"{settings.FRONTEND_URL.rstrip('/')}/admin/tenants/{tenant_id}?{query}", status_code=302)


@router.get("/jobadder/authorize")
async def authorize(
    tenant_id: str = Query(..., alias="tenantId"),
    db: Session = Depends(get_db),
    services: ApiServices = Depends(get_services),
):
    """Send the tenant admin to JobAdder's consent page."""
    tenant = db.get(Tenant, tenant_id)
    if tenant is None or not tenant.is_active:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found")
    return RedirectResponse(services.tokens.authorization_url(tenant_id), status_code=302)


@router.get("/jobadder/callback")
async def callback(
    code: str = Query(...),
    state: str = Query(...),
    db: Session = Depends(get_db),
    services: ApiServices = Depends(get_services),
    settings: ApiSettings = Depends(get_settings),
):
    """Exchange the code for tokens, then subscribe to the tenant's webhooks.

    ``state`` carries the tenant id. The webhook secret is stored before the
    subscription is created so the first delivery already verifies.
    """
    tenant_id = state
    if db.get(Tenant, tenant_id) is None:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found")

    try:
        await services.tokens.exchange_code(tenant_id, code)
    except (AuthError, ExternalApiError) as e:
        logger.error("JobAdder OAuth callback failed", tenant_id=tenant_id, error=str(e))
        return _admin_redirect(settings, tenant_id, error="Failed to connect JobAdder")

    connection = db.execute(
        select(ATSConnection).where(ATSConnection.tenant_id == tenant_id)
    ).scalar_one()
    secret = secrets.token_urlsafe(32)
    connection.webhook_secret = services.cipher.encrypt(secret)
    db.commit()

    try:
        hook = await services.ats_client.register_webhook(tenant_id, settings.webhook_url, secret)
    except (AuthError, ExternalApiError) as e:
        logger.warning("JobAdder webhook registration failed", tenant_id=tenant_id, error=str(e))
        return _admin_redirect(
            settings, tenant_id, message="JobAdder connected", error="Webhook registration failed"
        )

    connection.webhook_id = hook.external_id
    db.commit()
    logger.info("JobAdder connected", tenant_id=tenant_id, webhook_id=hook.external_id)
    return _admin_redirect(settings, tenant_id, message="JobAdder connected successfully")
