"""Validated shape of AI-derived candidate enrichment."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractedSkill(BaseModel):
    """A skill with an observed proficiency level on a 0-5 scale."""

    name: str = Field(min_length=1)
    level: float = Field(default=1.0, ge=0, le=5)
    category: Optional[str] = None  # technical, soft, domain
    years: Optional[float] = Field(default=None, ge=0)


class RoleSummary(BaseModel):
    title: str
    company: Optional[str] = None
    duration_months: int = Field(default=0, ge=0)
    responsibilities: List[str] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)


class ExperienceSummary(BaseModel):
    roles: List[RoleSummary] = Field(default_factory=list)
    total_years_experience: float = Field(default=0, ge=0)
    seniority_level: Optional[str] = None


class Degree(BaseModel):
    level: Optional[str] = None
    field: Optional[str] = None
    institution: Optional[str] = None
    year: Optional[int] = None


class EducationSummary(BaseModel):
    degrees: List[Degree] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)


class TeamFitMetrics(BaseModel):
    """Team fit dimensions, each 0-100."""

    collaboration: float = Field(default=0, ge=0, le=100)
    autonomy: float = Field(default=0, ge=0, le=100)
    innovation: float = Field(default=0, ge=0, le=100)
    resilience: float = Field(default=0, ge=0, le=100)

    @property
    def average(self) -> float:
        return (self.collaboration + self.autonomy + self.innovation + self.resilience) / 4


class EnrichmentProfile(BaseModel):
    """Structured output of the AI-analysis collaborator.

    Anything that fails validation here is a malformed response.
    """

    model_config = ConfigDict(extra="ignore")

    extracted_skills: List[ExtractedSkill] = Field(default_factory=list)
    experience_summary: ExperienceSummary = Field(default_factory=ExperienceSummary)
    education_summary: EducationSummary = Field(default_factory=EducationSummary)
    personality_traits: List[str] = Field(default_factory=list)
    communication_style: Optional[str] = None
    communication_score: float = Field(default=0, ge=0, le=100)
    leadership_potential: float = Field(default=0, ge=0, le=100)
    team_fit_metrics: TeamFitMetrics = Field(default_factory=TeamFitMetrics)
    confidence_score: float = Field(default=0, ge=0, le=1)
    enrichment_version: str = "1.0"

    @field_validator("extracted_skills", mode="before")
    @classmethod
    def _coerce_bare_skill_names(cls, value):
        # Bare strings carry no level information; treat them as level 1
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    def skill_level(self, skill_name: str) -> float:
        """Observed level for a skill, case-insensitive; 0 when absent."""
        wanted = skill_name.strip().lower()
        levels = [s.level for s in self.extracted_skills if s.name.strip().lower() == wanted]
        return max(levels) if levels else 0.0
