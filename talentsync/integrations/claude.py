"""Claude AI integration for candidate enrichment."""

import json
from typing import Optional, Protocol

import structlog
from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)
from pydantic import ValidationError

from talentsync.config import ClaudeConfig
from talentsync.errors import MalformedResponseError, PermanentExternalError, TransientExternalError
from talentsync.schemas.enrichment import EnrichmentProfile

logger = structlog.get_logger()

# Profiles longer than this are truncated before analysis
MAX_PROFILE_CHARS = 60000

ENRICHMENT_PROMPT = """Analyze the candidate profile below and return ONLY a JSON object with this shape:

{
  "extracted_skills": [{"name": "...", "level": 0-5, "category": "technical|soft|domain", "years": 0}],
  "experience_summary": {
    "roles": [{"title": "...", "company": "...", "duration_months": 0, "responsibilities": [], "achievements": []}],
    "total_years_experience": 0,
    "seniority_level": "junior|mid|senior|lead|executive"
  },
  "education_summary": {"degrees": [{"level": "...", "field": "...", "institution": "...", "year": 0}], "certifications": []},
  "personality_traits": ["..."],
  "communication_style": "...",
  "communication_score": 0-100,
  "leadership_potential": 0-100,
  "team_fit_metrics": {"collaboration": 0-100, "autonomy": 0-100, "innovation": 0-100, "resilience": 0-100},
  "confidence_score": 0-1
}

Skill level: 1 = exposure, 3 = working proficiency, 5 = expert.
Base every value on evidence in the profile. Use 0 or empty lists when there is no evidence.

## Candidate Profile
{profile}
"""


class Analyzer(Protocol):
    """AI-analysis collaborator: profile text in, structured enrichment out."""

    async def analyze(self, profile_text: str) -> EnrichmentProfile:
        ...


def extract_json(text: str) -> str:
    """Extract the outermost JSON object from a response that may contain other text."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start != -1 and end > start:
        return text[start:end]
    raise ValueError("No JSON found in response")


def parse_enrichment(text: str) -> EnrichmentProfile:
    """Parse and validate an analyzer response.

    Raises:
        MalformedResponseError: If the response is not a valid enrichment
    """
    try:
        data = json.loads(extract_json(text))
        return EnrichmentProfile.model_validate(data)
    except (ValueError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        raise MalformedResponseError(f"Unparseable enrichment: {str(e)[:300]}", service="claude") from e


class ClaudeAnalyzer:
    """Enriches candidate profiles using Claude."""

    def __init__(self, config: ClaudeConfig, client: Optional[AsyncAnthropic] = None):
        self.client = client or AsyncAnthropic(api_key=config.api_key, timeout=config.timeout, max_retries=0)
        self.model = config.model
        self.max_tokens = config.max_tokens

    async def analyze(self, profile_text: str) -> EnrichmentProfile:
        """Run enrichment analysis.

        Args:
            profile_text: Resume text or rendered structured profile

        Returns:
            Validated EnrichmentProfile

        Raises:
            TransientExternalError: Timeouts, connection errors, rate limits, 5xx
            PermanentExternalError: Requests Claude will never accept
            MalformedResponseError: Response did not match the expected shape
        """
        prompt = ENRICHMENT_PROMPT.replace("{profile}", profile_text[:MAX_PROFILE_CHARS])

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except (APITimeoutError, APIConnectionError) as e:
            logger.warning("Claude unreachable", error=str(e))
            raise TransientExternalError(f"Claude unreachable: {e}", service="claude") from e
        except (RateLimitError, InternalServerError) as e:
            logger.warning("Claude temporarily unavailable", status_code=e.status_code)
            raise TransientExternalError(
                f"Claude unavailable: {e.status_code}", status_code=e.status_code, service="claude"
            ) from e
        except APIStatusError as e:
            if e.status_code in (408, 409, 529):
                raise TransientExternalError(
                    f"Claude unavailable: {e.status_code}", status_code=e.status_code, service="claude"
                ) from e
            logger.error("Claude API error during enrichment", status_code=e.status_code, error=str(e))
            raise PermanentExternalError(
                f"Enrichment request rejected: {e.status_code}", status_code=e.status_code, service="claude"
            ) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        profile = parse_enrichment(text)

        logger.info(
            "Enrichment analysis complete",
            skills_count=len(profile.extracted_skills),
            confidence=profile.confidence_score,
        )
        return profile

    async def ping(self) -> bool:
        """Cheap reachability check for the health probe."""
        try:
            await self.client.models.list(limit=1)
            return True
        except (APIConnectionError, APIStatusError) as e:
            logger.warning("Claude health check failed", error=str(e))
            return False
