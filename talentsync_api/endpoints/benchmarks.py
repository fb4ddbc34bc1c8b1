"""Benchmark template management endpoints."""

from typing import List

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from talentsync.services import BenchmarkTemplateService

from talentsync_api.dependencies import get_db, get_tenant_id
from talentsync_api.middleware.error_handler import ValidationAPIError
from talentsync_api.schemas.benchmarks import (
    BenchmarkTemplateCreate,
    BenchmarkTemplateResponse,
    BenchmarkTemplateUpdate,
)

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=List[BenchmarkTemplateResponse])
async def list_templates(
    include_public: bool = Query(True, alias="includePublic"),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """List the tenant's active templates, plus public ones unless excluded."""
    templates = BenchmarkTemplateService(db).list(tenant_id, include_public=include_public)
    return [BenchmarkTemplateResponse.model_validate(t) for t in templates]


@router.post("", response_model=BenchmarkTemplateResponse, status_code=201)
async def create_template(
    body: BenchmarkTemplateCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    template = BenchmarkTemplateService(db).create(
        tenant_id,
        body.name,
        body.definition(),
        description=body.description,
        industry=body.industry,
        role_level=body.role_level,
        is_public=body.is_public,
    )
    return BenchmarkTemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=BenchmarkTemplateResponse)
async def get_template(
    template_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    template = BenchmarkTemplateService(db).get(tenant_id, template_id)
    return BenchmarkTemplateResponse.model_validate(template)


@router.put("/{template_id}", response_model=BenchmarkTemplateResponse)
async def update_template(
    template_id: int,
    body: BenchmarkTemplateUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Edit a template.

    A template already used for a stored score answers 409 unless the
    request asks for a new version.
    """
    changes = body.changes()
    if not changes and not body.new_version:
        raise ValidationAPIError("No changes supplied")
    template = BenchmarkTemplateService(db).update(tenant_id, template_id, changes, new_version=body.new_version)
    return BenchmarkTemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=204)
async def deactivate_template(
    template_id: int,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    BenchmarkTemplateService(db).deactivate(tenant_id, template_id)
