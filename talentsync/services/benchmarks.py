"""Benchmark template management."""

from typing import Any, Dict, List, Optional, Union

import structlog
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from talentsync.errors import TemplateLockedError, TemplateNotFoundError
from talentsync.models import BenchmarkTemplate
from talentsync.schemas.benchmarks import TemplateDefinition
from talentsync.utils.time import utc_now

logger = structlog.get_logger()

DEFINITION_FIELDS = ("skill_weights", "experience_weights", "scoring_rules")
METADATA_FIELDS = ("name", "description", "industry", "role_level", "is_public")


def definition_of(template: BenchmarkTemplate) -> TemplateDefinition:
    """Load a stored template's scoring content."""
    return TemplateDefinition.model_validate(
        {
            "skill_weights": template.skill_weights,
            "experience_weights": template.experience_weights,
            "scoring_rules": template.scoring_rules,
        }
    )


class BenchmarkTemplateService:
    """CRUD and versioning for tenant benchmark templates.

    A template referenced by a stored score is immutable. Edits to it must
    ask for a new version, which deactivates the old row.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        tenant_id: str,
        name: str,
        definition: Union[TemplateDefinition, Dict[str, Any]],
        description: Optional[str] = None,
        industry: Optional[str] = None,
        role_level: Optional[str] = None,
        is_public: bool = False,
        created_by: Optional[str] = None,
    ) -> BenchmarkTemplate:
        """Create a template after validating its rules.

        Raises:
            pydantic.ValidationError: If weights or rules are malformed
        """
        if not isinstance(definition, TemplateDefinition):
            definition = TemplateDefinition.model_validate(definition)

        data = definition.model_dump(mode="json")
        template = BenchmarkTemplate(
            tenant_id=tenant_id,
            name=name,
            description=description,
            industry=industry,
            role_level=role_level,
            is_public=is_public,
            skill_weights=data["skill_weights"],
            experience_weights=data["experience_weights"],
            scoring_rules=data["scoring_rules"],
            version=1,
            is_active=True,
            created_by=created_by,
        )
        self.db.add(template)
        self.db.commit()
        logger.info("Benchmark template created", tenant_id=tenant_id, template_id=template.id, name=name)
        return template

    def get(self, tenant_id: str, template_id: int, include_inactive: bool = False) -> BenchmarkTemplate:
        """Get a template the tenant can see: its own, or a public one.

        Raises:
            TemplateNotFoundError: If missing, inactive, or owned by another tenant
        """
        query = select(BenchmarkTemplate).where(
            BenchmarkTemplate.id == template_id,
            or_(BenchmarkTemplate.tenant_id == tenant_id, BenchmarkTemplate.is_public.is_(True)),
        )
        if not include_inactive:
            query = query.where(BenchmarkTemplate.is_active.is_(True))
        template = self.db.execute(query).scalar_one_or_none()
        if template is None:
            raise TemplateNotFoundError(f"Benchmark template {template_id} not found")
        return template

    def list(self, tenant_id: str, include_public: bool = True) -> List[BenchmarkTemplate]:
        visibility = BenchmarkTemplate.tenant_id == tenant_id
        if include_public:
            visibility = or_(visibility, BenchmarkTemplate.is_public.is_(True))
        return list(
            self.db.execute(
                select(BenchmarkTemplate)
                .where(visibility, BenchmarkTemplate.is_active.is_(True))
                .order_by(BenchmarkTemplate.name.asc(), BenchmarkTemplate.version.desc())
            ).scalars()
        )

    def _owned(self, tenant_id: str, template_id: int) -> BenchmarkTemplate:
        template = self.get(tenant_id, template_id)
        if template.tenant_id != tenant_id:
            # Public templates are readable by everyone but editable only by their owner
            raise TemplateNotFoundError(f"Benchmark template {template_id} not found")
        return template

    def update(
        self,
        tenant_id: str,
        template_id: int,
        changes: Dict[str, Any],
        new_version: bool = False,
    ) -> BenchmarkTemplate:
        """Apply changes in place, or as a new version.

        Args:
            tenant_id: Owning tenant
            template_id: Template to change
            changes: Any of name, description, industry, role_level, is_public,
                skill_weights, experience_weights, scoring_rules
            new_version: Write a new version row instead of editing in place

        Raises:
            TemplateLockedError: If the template is referenced and new_version is False
            TemplateNotFoundError: If the tenant does not own the template
        """
        template = self._owned(tenant_id, template_id)
        unknown = set(changes) - set(DEFINITION_FIELDS) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown template fields: {', '.join(sorted(unknown))}")

        merged = definition_of(template).model_dump(mode="json")
        merged.update({k: v for k, v in changes.items() if k in DEFINITION_FIELDS})
        definition = TemplateDefinition.model_validate(merged).model_dump(mode="json")
        metadata = {k: v for k, v in changes.items() if k in METADATA_FIELDS}

        if new_version:
            successor = BenchmarkTemplate(
                tenant_id=template.tenant_id,
                name=metadata.get("name", template.name),
                description=metadata.get("description", template.description),
                industry=metadata.get("industry", template.industry),
                role_level=metadata.get("role_level", template.role_level),
                is_public=metadata.get("is_public", template.is_public),
                version=template.version + 1,
                parent_id=template.id,
                is_active=True,
                created_by=template.created_by,
                **definition,
            )
            template.is_active = False
            self.db.add(successor)
            self.db.commit()
            logger.info(
                "Benchmark template versioned",
                tenant_id=tenant_id,
                parent_id=template.id,
                template_id=successor.id,
                version=successor.version,
            )
            return successor

        if template.is_locked:
            raise TemplateLockedError(
                f"Benchmark template {template_id} is referenced by stored scores; create a new version"
            )

        for key, value in {**metadata, **definition}.items():
            setattr(template, key, value)
        self.db.commit()
        logger.info("Benchmark template updated", tenant_id=tenant_id, template_id=template.id)
        return template

    def deactivate(self, tenant_id: str, template_id: int) -> BenchmarkTemplate:
        template = self._owned(tenant_id, template_id)
        template.is_active = False
        self.db.commit()
        logger.info("Benchmark template deactivated", tenant_id=tenant_id, template_id=template_id)
        return template

    def mark_referenced(self, template: BenchmarkTemplate) -> None:
        """Lock a template once a completed score points at it."""
        if template.referenced_at is None:
            template.referenced_at = utc_now()
