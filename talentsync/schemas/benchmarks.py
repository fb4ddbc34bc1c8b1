"""Benchmark template rules and scoring results.

Templates are stored as JSON; every write passes through these models so a
stored template is always well-formed. Custom formulas are a tagged union
keyed by ``kind``.
"""

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Numeric attributes of an EnrichmentProfile a template may weight
EXPERIENCE_ATTRIBUTES = (
    "total_years_experience",
    "leadership_potential",
    "communication_score",
    "team_fit",
    "team_fit.collaboration",
    "team_fit.autonomy",
    "team_fit.innovation",
    "team_fit.resilience",
    "skill_count",
    "role_count",
    "certification_count",
    "confidence_score",
)

CATEGORIES = ("skills", "experience")

FormulaTarget = Literal["skills", "experience", "overall"]

DEFAULT_TIER_THRESHOLDS = {"A": 85.0, "B": 70.0, "C": 0.0}


class SkillWeight(BaseModel):
    skill_name: str = Field(min_length=1)
    weight: float = Field(gt=0)
    minimum_level: float = Field(default=1.0, gt=0)


class ExperienceWeight(BaseModel):
    attribute: str
    weight: float = Field(gt=0)
    required_level: float = Field(gt=0)
    label: Optional[str] = None

    @field_validator("attribute")
    @classmethod
    def _known_attribute(cls, value: str) -> str:
        if value not in EXPERIENCE_ATTRIBUTES:
            raise ValueError(f"unknown attribute '{value}'")
        return value

    @property
    def display_name(self) -> str:
        return self.label or self.attribute


class FixedScore(BaseModel):
    """Replace the target score with a constant."""

    kind: Literal["fixed"] = "fixed"
    target: FormulaTarget
    value: float = Field(ge=0, le=100)


class Multiplier(BaseModel):
    kind: Literal["multiplier"] = "multiplier"
    target: FormulaTarget
    factor: float = Field(ge=0)


class Floor(BaseModel):
    kind: Literal["floor"] = "floor"
    target: FormulaTarget
    value: float = Field(ge=0, le=100)


class Ceiling(BaseModel):
    kind: Literal["ceiling"] = "ceiling"
    target: FormulaTarget
    value: float = Field(ge=0, le=100)


class RequiredItems(BaseModel):
    """Cap the target score when any named item falls short of its requirement."""

    kind: Literal["required_items"] = "required_items"
    target: FormulaTarget
    items: List[str] = Field(min_length=1)
    score_if_missing: float = Field(default=0, ge=0, le=100)


CustomFormula = Annotated[
    Union[FixedScore, Multiplier, Floor, Ceiling, RequiredItems],
    Field(discriminator="kind"),
]


class ScoringRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category_weights: Dict[str, float] = Field(
        default_factory=lambda: {"skills": 0.5, "experience": 0.5}
    )
    tiering_thresholds: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_TIER_THRESHOLDS))
    cap: float = Field(default=1.0, ge=1.0, le=3.0)  # Max credit per item for exceeding a requirement
    strength_ratio: float = Field(default=1.0, gt=0)
    development_ratio: float = Field(default=0.6, gt=0)
    custom_formulas: List[CustomFormula] = Field(default_factory=list)

    @field_validator("category_weights")
    @classmethod
    def _valid_categories(cls, value: Dict[str, float]) -> Dict[str, float]:
        for name, weight in value.items():
            if name not in CATEGORIES:
                raise ValueError(f"unknown category '{name}'")
            if weight < 0:
                raise ValueError(f"category weight for '{name}' must be >= 0")
        return value

    @field_validator("tiering_thresholds")
    @classmethod
    def _valid_thresholds(cls, value: Dict[str, float]) -> Dict[str, float]:
        if not value:
            raise ValueError("at least one tier threshold is required")
        for tier, threshold in value.items():
            if not 0 <= threshold <= 100:
                raise ValueError(f"threshold for tier '{tier}' must be within 0-100")
        return value

    def ordered_tiers(self) -> List[tuple]:
        """Tiers highest threshold first; ties ordered by name."""
        return sorted(self.tiering_thresholds.items(), key=lambda item: (-item[1], item[0]))


class TemplateDefinition(BaseModel):
    """The scoring content of a template, independent of storage metadata."""

    skill_weights: List[SkillWeight] = Field(default_factory=list)
    experience_weights: List[ExperienceWeight] = Field(default_factory=list)
    scoring_rules: ScoringRules = Field(default_factory=ScoringRules)

    @model_validator(mode="after")
    def _has_items(self) -> "TemplateDefinition":
        if not self.skill_weights and not self.experience_weights:
            raise ValueError("a template needs at least one skill or experience weight")
        return self


class ItemScore(BaseModel):
    category: str
    name: str
    weight: float
    observed: float
    required: float
    ratio: float
    contribution: float  # min(ratio, cap) * weight * 100


class BenchmarkResult(BaseModel):
    template_id: Optional[int] = None
    template_name: str
    template_version: int = 1
    category_scores: Dict[str, float]
    overall_score: float
    tier: str
    strengths: List[str] = Field(default_factory=list)
    development_areas: List[str] = Field(default_factory=list)
    item_scores: List[ItemScore] = Field(default_factory=list)
