"""JobAdder webhook receiver."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from talentsync.webhooks import WebhookIngress

from talentsync_api.config import ApiSettings
from talentsync_api.dependencies import ApiServices, get_db, get_services, get_settings
from talentsync_api.middleware.error_handler import error_body
from talentsync_api.schemas.base import ErrorResponse

logger = structlog.get_logger()
router = APIRouter()

REJECTION_STATUS = {"InvalidSignature": 401, "InvalidPayload": 400}


@router.post("/jobadder", responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}})
async def receive_jobadder_webhook(
    request: Request,
    x_jobadder_signature: Optional[str] = Header(None, alias="X-JobAdder-Signature"),
    db: Session = Depends(get_db),
    services: ApiServices = Depends(get_services),
    settings: ApiSettings = Depends(get_settings),
):
    """Verify and apply a delivery.

    Duplicates answer 200 so JobAdder stops redelivering. Failures after
    the delivery was claimed propagate as errors so it is redelivered.
    """
    raw_body = await request.body()
    ingress = WebhookIngress(
        db,
        services.cipher,
        settings.ingress_config(),
        settings.queue_config(),
        ats_client=services.ats_client,
    )
    outcome = await ingress.handle(raw_body, x_jobadder_signature)

    if not outcome.accepted:
        return JSONResponse(
            status_code=REJECTION_STATUS.get(outcome.error, 400),
            content=error_body(outcome.error, outcome.message or ""),
        )

    return {
        "status": outcome.status,
        "event": outcome.event_type,
        "eventId": outcome.event_id,
    }
