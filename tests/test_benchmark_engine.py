"""
Tests for talentsync.benchmark.engine.evaluate and the template schemas.
"""

import pytest
from pydantic import ValidationError

from talentsync.benchmark.engine import assign_tier, evaluate
from talentsync.schemas.benchmarks import ScoringRules, TemplateDefinition

from tests.helpers import sample_profile


def js_template(**rules) -> TemplateDefinition:
    return TemplateDefinition.model_validate(
        {
            "skill_weights": [{"skill_name": "JS", "weight": 0.5, "minimum_level": 3}],
            "scoring_rules": rules,
        }
    )


class TestSkillScoring:
    def test_met_requirement_contributes_weight_times_hundred(self):
        profile = sample_profile(extracted_skills=[{"name": "JS", "level": 3}])
        result = evaluate(profile, js_template())

        item = result.item_scores[0]
        assert item.ratio == 1.0
        assert item.contribution == 50.0
        # Normalized by the category's total weight
        assert result.category_scores["skills"] == 100.0

    def test_skill_match_is_case_insensitive(self):
        profile = sample_profile(extracted_skills=[{"name": "js", "level": 3}])
        assert evaluate(profile, js_template()).item_scores[0].observed == 3

    def test_missing_skill_scores_zero_and_is_a_development_area(self):
        profile = sample_profile(extracted_skills=[])
        result = evaluate(profile, js_template())
        assert result.overall_score == 0.0
        assert result.development_areas == ["JS"]
        assert result.strengths == []

    def test_exceeding_requirement_is_capped(self):
        profile = sample_profile(extracted_skills=[{"name": "JS", "level": 5}])
        capped = evaluate(profile, js_template())
        generous = evaluate(profile, js_template(cap=1.5))
        assert capped.category_scores["skills"] == 100.0
        assert generous.item_scores[0].contribution == 75.0


class TestGeneralTemplate:
    def test_general_template_used_when_none_given(self):
        result = evaluate(sample_profile())

        assert result.template_name == "general"
        assert result.template_id is None
        assert result.overall_score == pytest.approx(71.875, abs=0.01)
        assert result.tier == "B"
        assert set(result.strengths) == {"communication", "adaptability"}
        assert result.development_areas == ["technical_skills"]

    def test_general_template_global_thresholds(self):
        rules = ScoringRules()
        assert assign_tier(85, rules) == "A"
        assert assign_tier(84.99, rules) == "B"
        assert assign_tier(70, rules) == "B"
        assert assign_tier(69.99, rules) == "C"


class TestTemplateThresholds:
    def test_template_thresholds_are_authoritative(self):
        profile = sample_profile(extracted_skills=[{"name": "JS", "level": 2.7}])
        template = js_template(tiering_thresholds={"A": 99, "B": 95, "C": 0})

        result = evaluate(profile, template)

        assert result.overall_score == 90.0
        # The global default would say A
        assert result.tier == "C"

    def test_custom_tier_names(self):
        profile = sample_profile(extracted_skills=[{"name": "JS", "level": 3}])
        template = js_template(tiering_thresholds={"Gold": 90, "Silver": 50, "Bronze": 0})
        assert evaluate(profile, template).tier == "Gold"

    def test_score_below_every_threshold_lands_in_lowest_tier(self):
        rules = ScoringRules(tiering_thresholds={"Top": 80, "Mid": 40})
        assert assign_tier(10, rules) == "Mid"


class TestCustomFormulas:
    def test_floor_on_overall(self):
        profile = sample_profile(extracted_skills=[])
        template = js_template(custom_formulas=[{"kind": "floor", "target": "overall", "value": 40}])
        assert evaluate(profile, template).overall_score == 40.0

    def test_required_items_caps_when_missing(self):
        profile = sample_profile(extracted_skills=[{"name": "JS", "level": 3}])
        template = TemplateDefinition.model_validate(
            {
                "skill_weights": [
                    {"skill_name": "JS", "weight": 0.5, "minimum_level": 3},
                    {"skill_name": "Go", "weight": 0.5, "minimum_level": 3},
                ],
                "scoring_rules": {
                    "custom_formulas": [
                        {"kind": "required_items", "target": "overall", "items": ["Go"], "score_if_missing": 20}
                    ]
                },
            }
        )
        result = evaluate(profile, template)
        assert result.category_scores["skills"] == 50.0
        assert result.overall_score == 20.0

    def test_multiplier_on_category_is_clamped(self):
        profile = sample_profile(extracted_skills=[{"name": "JS", "level": 3}])
        template = js_template(custom_formulas=[{"kind": "multiplier", "target": "skills", "factor": 2}])
        assert evaluate(profile, template).category_scores["skills"] == 100.0


class TestPurity:
    def test_same_input_same_result(self):
        profile = sample_profile()
        template = js_template(custom_formulas=[{"kind": "ceiling", "target": "overall", "value": 95}])
        first = evaluate(profile, template, template_id=7, template_name="JS", template_version=2)
        second = evaluate(profile, template, template_id=7, template_name="JS", template_version=2)
        assert first == second
        assert first.template_version == 2

    def test_dict_profile_is_validated(self):
        result = evaluate(sample_profile().model_dump(), js_template())
        assert result.item_scores[0].name == "JS"


class TestTemplateValidation:
    def test_unknown_attribute_rejected(self):
        with pytest.raises(ValidationError):
            TemplateDefinition.model_validate(
                {"experience_weights": [{"attribute": "shoe_size", "weight": 1, "required_level": 1}]}
            )

    def test_unknown_formula_kind_rejected(self):
        with pytest.raises(ValidationError):
            js_template(custom_formulas=[{"kind": "sqrt", "target": "overall"}])

    def test_template_needs_a_weight(self):
        with pytest.raises(ValidationError):
            TemplateDefinition.model_validate({"skill_weights": [], "experience_weights": []})

    def test_unknown_category_weight_rejected(self):
        with pytest.raises(ValidationError):
            js_template(category_weights={"charisma": 1.0})
