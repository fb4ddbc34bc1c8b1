"""Test doubles and sample data shared across test modules."""

from typing import Any, Dict, List, Optional

from talentsync.integrations.ses import NotificationResult
from talentsync.schemas.enrichment import EnrichmentProfile

TENANT_ID = "tenant-1"
WEBHOOK_SECRET = "whsec-test"


class FakeAnalyzer:
    """Returns queued results in order; exceptions in the queue are raised."""

    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        self.calls: List[str] = []

    async def analyze(self, profile_text: str) -> EnrichmentProfile:
        self.calls.append(profile_text)
        result = self.results.pop(0) if self.results else sample_profile()
        if isinstance(result, Exception):
            raise result
        return result

    async def ping(self) -> bool:
        return True


class FakeNotifier:
    """Records sends; ``outcomes`` may hold NotificationResults or exceptions."""

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or [])
        self.sent: List[tuple] = []

    async def send(self, destination: str, template_params: Dict[str, Any]) -> NotificationResult:
        self.sent.append((destination, template_params))
        outcome = self.outcomes.pop(0) if self.outcomes else NotificationResult(accepted=True, message_id="msg-1")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def sample_profile(**overrides) -> EnrichmentProfile:
    data = {
        "extracted_skills": [
            {"name": "JavaScript", "level": 3, "category": "technical"},
            {"name": "Python", "level": 4, "category": "technical"},
            {"name": "Negotiation", "level": 2, "category": "soft"},
        ],
        "experience_summary": {
            "roles": [{"title": "Engineer", "company": "Acme", "duration_months": 48}],
            "total_years_experience": 6,
            "seniority_level": "senior",
        },
        "education_summary": {"degrees": [{"level": "BSc", "field": "CS"}], "certifications": ["AWS"]},
        "personality_traits": ["curious"],
        "communication_score": 80,
        "leadership_potential": 60,
        "team_fit_metrics": {"collaboration": 80, "autonomy": 70, "innovation": 60, "resilience": 90},
        "confidence_score": 0.8,
    }
    data.update(overrides)
    return EnrichmentProfile.model_validate(data)
