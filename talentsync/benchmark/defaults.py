"""System "general" template.

Used whenever no template is requested. Its weights are fixed constants and
are not stored or editable: technical breadth .25, domain experience .25,
leadership .15, communication .15, team fit .10, adaptability .10.
Tiers use the global defaults A >= 85, B >= 70, else C.
"""

from talentsync.schemas.benchmarks import (
    DEFAULT_TIER_THRESHOLDS,
    ExperienceWeight,
    ScoringRules,
    TemplateDefinition,
)

GENERAL_TEMPLATE_NAME = "general"

GENERAL_TEMPLATE = TemplateDefinition(
    skill_weights=[],
    experience_weights=[
        ExperienceWeight(attribute="skill_count", weight=0.25, required_level=10, label="technical_skills"),
        ExperienceWeight(attribute="total_years_experience", weight=0.25, required_level=8, label="domain_expertise"),
        ExperienceWeight(attribute="leadership_potential", weight=0.15, required_level=80, label="leadership"),
        ExperienceWeight(attribute="communication_score", weight=0.15, required_level=80, label="communication"),
        ExperienceWeight(attribute="team_fit", weight=0.10, required_level=80, label="team_fit"),
        ExperienceWeight(attribute="team_fit.resilience", weight=0.10, required_level=80, label="adaptability"),
    ],
    scoring_rules=ScoringRules(
        category_weights={"skills": 0.0, "experience": 1.0},
        tiering_thresholds=dict(DEFAULT_TIER_THRESHOLDS),
    ),
)
