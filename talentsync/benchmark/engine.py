"""Benchmark scoring engine.

``evaluate`` is a pure function of (enrichment, template): no I/O, no clock,
no randomness. The same inputs always produce the same BenchmarkResult.
"""

from typing import Dict, List, Optional, Union

from talentsync.benchmark.defaults import GENERAL_TEMPLATE, GENERAL_TEMPLATE_NAME
from talentsync.schemas.benchmarks import (
    BenchmarkResult,
    ItemScore,
    RequiredItems,
    ScoringRules,
    TemplateDefinition,
)
from talentsync.schemas.enrichment import EnrichmentProfile


def attribute_value(profile: EnrichmentProfile, attribute: str) -> float:
    """Numeric value of a named profile attribute; 0 when absent."""
    team_fit = profile.team_fit_metrics
    if attribute == "total_years_experience":
        return float(profile.experience_summary.total_years_experience)
    if attribute == "leadership_potential":
        return float(profile.leadership_potential)
    if attribute == "communication_score":
        return float(profile.communication_score)
    if attribute == "team_fit":
        return float(team_fit.average)
    if attribute.startswith("team_fit."):
        return float(getattr(team_fit, attribute.split(".", 1)[1], 0) or 0)
    if attribute == "skill_count":
        return float(len(profile.extracted_skills))
    if attribute == "role_count":
        return float(len(profile.experience_summary.roles))
    if attribute == "certification_count":
        return float(len(profile.education_summary.certifications))
    if attribute == "confidence_score":
        return float(profile.confidence_score)
    return 0.0


def _item(category: str, name: str, weight: float, observed: float, required: float, cap: float) -> ItemScore:
    ratio = observed / required if required else 0.0
    return ItemScore(
        category=category,
        name=name,
        weight=weight,
        observed=observed,
        required=required,
        ratio=round(ratio, 4),
        contribution=round(min(ratio, cap) * weight * 100, 4),
    )


def score_items(profile: EnrichmentProfile, template: TemplateDefinition) -> List[ItemScore]:
    """Score each weighted entry of a template, in template order."""
    cap = template.scoring_rules.cap
    items = [
        _item("skills", w.skill_name, w.weight, profile.skill_level(w.skill_name), w.minimum_level, cap)
        for w in template.skill_weights
    ]
    items.extend(
        _item("experience", w.display_name, w.weight, attribute_value(profile, w.attribute), w.required_level, cap)
        for w in template.experience_weights
    )
    return items


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _apply_formula(formula, score: float, items: List[ItemScore]) -> float:
    if formula.kind == "fixed":
        return formula.value
    if formula.kind == "multiplier":
        return score * formula.factor
    if formula.kind == "floor":
        return max(score, formula.value)
    if formula.kind == "ceiling":
        return min(score, formula.value)
    if isinstance(formula, RequiredItems):
        met = {i.name.lower() for i in items if i.ratio >= 1.0}
        if any(name.lower() not in met for name in formula.items):
            return min(score, formula.score_if_missing)
        return score
    return score


def _category_scores(items: List[ItemScore], rules: ScoringRules) -> Dict[str, float]:
    scores: Dict[str, float] = {}
    for category in ("skills", "experience"):
        members = [i for i in items if i.category == category]
        if not members:
            continue
        total_weight = sum(i.weight for i in members)
        scores[category] = _clamp(sum(i.contribution for i in members) / total_weight)

    for formula in rules.custom_formulas:
        if formula.target in scores:
            scores[formula.target] = _clamp(_apply_formula(formula, scores[formula.target], items))
    return scores


def _overall(category_scores: Dict[str, float], items: List[ItemScore], rules: ScoringRules) -> float:
    weighted = [
        (score, rules.category_weights.get(category, 0.0))
        for category, score in category_scores.items()
    ]
    total_weight = sum(w for _, w in weighted)
    if total_weight > 0:
        overall = sum(s * w for s, w in weighted) / total_weight
    elif category_scores:
        overall = sum(category_scores.values()) / len(category_scores)
    else:
        overall = 0.0

    for formula in rules.custom_formulas:
        if formula.target == "overall":
            overall = _apply_formula(formula, overall, items)
    return _clamp(overall)


def assign_tier(score: float, rules: ScoringRules) -> str:
    """Highest tier whose inclusive lower bound the score meets.

    A score below every threshold lands in the lowest tier.
    """
    ordered = rules.ordered_tiers()
    for tier, threshold in ordered:
        if score >= threshold:
            return tier
    return ordered[-1][0]


def evaluate(
    enrichment: Union[EnrichmentProfile, dict],
    template: Optional[TemplateDefinition] = None,
    template_id: Optional[int] = None,
    template_name: Optional[str] = None,
    template_version: int = 1,
) -> BenchmarkResult:
    """Score an enriched profile against a template.

    Args:
        enrichment: Validated profile (a dict is validated first)
        template: Template rules; the system "general" template when omitted
        template_id: Stored template ID, echoed into the result
        template_name: Template name, echoed into the result
        template_version: Template version, echoed into the result

    Returns:
        BenchmarkResult with per-category, per-item and overall scores
    """
    profile = enrichment if isinstance(enrichment, EnrichmentProfile) else EnrichmentProfile.model_validate(enrichment)
    if template is None:
        template = GENERAL_TEMPLATE
        template_id = None
        template_name = GENERAL_TEMPLATE_NAME

    rules = template.scoring_rules
    items = score_items(profile, template)
    category_scores = _category_scores(items, rules)
    overall = round(_overall(category_scores, items, rules), 2)

    return BenchmarkResult(
        template_id=template_id,
        template_name=template_name or "custom",
        template_version=template_version,
        category_scores={k: round(v, 2) for k, v in category_scores.items()},
        overall_score=overall,
        tier=assign_tier(overall, rules),
        strengths=[i.name for i in items if i.ratio >= rules.strength_ratio],
        development_areas=[i.name for i in items if i.ratio < rules.development_ratio],
        item_scores=items,
    )
