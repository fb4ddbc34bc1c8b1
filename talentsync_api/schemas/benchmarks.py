"""Benchmark template request and response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from humps import decamelize
from pydantic import Field

from .base import CamelModel


def _rules_to_snake(rules: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Decamelize rule keys without touching user-defined keys such as tier names."""
    if rules is None:
        return None
    converted = {decamelize(key): value for key, value in rules.items()}
    if isinstance(converted.get("custom_formulas"), list):
        converted["custom_formulas"] = [decamelize(item) for item in converted["custom_formulas"]]
    return converted


class TemplateFields(CamelModel):
    skill_weights: Optional[List[Dict[str, Any]]] = None
    experience_weights: Optional[List[Dict[str, Any]]] = None
    scoring_rules: Optional[Dict[str, Any]] = None

    def definition(self) -> Dict[str, Any]:
        """Scoring content in stored (snake_case) form, only the fields given."""
        data = {}
        if self.skill_weights is not None:
            data["skill_weights"] = decamelize(self.skill_weights)
        if self.experience_weights is not None:
            data["experience_weights"] = decamelize(self.experience_weights)
        if self.scoring_rules is not None:
            data["scoring_rules"] = _rules_to_snake(self.scoring_rules)
        return data


class BenchmarkTemplateCreate(TemplateFields):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    industry: Optional[str] = None
    role_level: Optional[str] = None
    is_public: bool = False


class BenchmarkTemplateUpdate(TemplateFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    industry: Optional[str] = None
    role_level: Optional[str] = None
    is_public: Optional[bool] = None
    new_version: bool = False

    def changes(self) -> Dict[str, Any]:
        changes = self.model_dump(
            include={"name", "description", "industry", "role_level", "is_public"},
            exclude_unset=True,
        )
        changes.update(self.definition())
        return changes


class BenchmarkTemplateResponse(CamelModel):
    id: int
    tenant_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    industry: Optional[str] = None
    role_level: Optional[str] = None
    is_public: bool
    skill_weights: List[Dict[str, Any]]
    experience_weights: List[Dict[str, Any]]
    scoring_rules: Dict[str, Any]
    version: int
    parent_id: Optional[int] = None
    is_active: bool
    is_locked: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
