"""Candidate enrichment, scoring and consent endpoints."""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query

from talentsync.queue_manager import EnrichmentQueue
from talentsync.services import EnrichmentService, NotYetEnriched

from talentsync_api.dependencies import get_enrichment_service, get_queue, get_tenant_id
from talentsync_api.schemas.candidates import (
    AccessLogEntryResponse,
    ConsentRequest,
    ConsentResponse,
    EnrichRequest,
    QueueEntryResponse,
    ScoreResponse,
)

logger = structlog.get_logger()
router = APIRouter()


@router.post("/{candidate_id}/enrich", response_model=QueueEntryResponse, status_code=202)
async def enqueue_enrichment(
    candidate_id: int,
    body: Optional[EnrichRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    service: EnrichmentService = Depends(get_enrichment_service),
    queue: EnrichmentQueue = Depends(get_queue),
):
    """Queue a candidate for enrichment.

    Re-queuing a pending candidate raises its priority instead of adding a
    second entry. A terminally failed entry is only reopened with ``reset``.
    """
    body = body or EnrichRequest()
    service.get_candidate(tenant_id, candidate_id)
    entry = queue.enqueue(
        candidate_id,
        tenant_id,
        priority=body.priority,
        payload=body.payload(),
        reset=body.reset,
    )
    return QueueEntryResponse.model_validate(entry)


@router.get("/{candidate_id}/score", response_model=ScoreResponse)
async def get_candidate_score(
    candidate_id: int,
    benchmark_template_id: Optional[int] = Query(None, alias="benchmarkTemplateId"),
    tenant_id: str = Depends(get_tenant_id),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    """Score a candidate; without a template the general benchmark is used."""
    result = service.get_candidate_score(tenant_id, candidate_id, benchmark_template_id)
    if isinstance(result, NotYetEnriched):
        return ScoreResponse(candidate_id=candidate_id, status=result.status, queue_status=result.queue_status)

    return ScoreResponse(candidate_id=candidate_id, status="scored", **result.model_dump())


@router.put("/{candidate_id}/consent", response_model=ConsentResponse)
async def update_consent(
    candidate_id: int,
    body: ConsentRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    """Grant or withdraw data-usage consent. Withdrawal erases enrichment data."""
    candidate = service.update_consent(
        tenant_id, candidate_id, body.data_usage_consent, actor=body.actor or "system:api"
    )
    return ConsentResponse(
        candidate_id=candidate.id,
        data_usage_consent=candidate.data_usage_consent,
        consent_updated_at=candidate.consent_updated_at,
    )


@router.get("/{candidate_id}/access-log", response_model=List[AccessLogEntryResponse])
async def get_access_log(
    candidate_id: int,
    tenant_id: str = Depends(get_tenant_id),
    service: EnrichmentService = Depends(get_enrichment_service),
):
    """Every privileged read and write of the candidate's data, oldest first."""
    service.get_candidate(tenant_id, candidate_id)
    entries = service.access_log.list_for_candidate(tenant_id, candidate_id)
    return [AccessLogEntryResponse.model_validate(e) for e in entries]
