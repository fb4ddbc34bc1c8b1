"""Enrichment processor: profile source assembly, AI analysis and scoring."""

import asyncio
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from talentsync.ats.base import render_profile_text
from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.config import RetentionConfig
from talentsync.errors import (
    ConsentRequired,
    MalformedResponseError,
    PermanentExternalError,
    TransientExternalError,
)
from talentsync.integrations.claude import Analyzer
from talentsync.models import Candidate, CandidateEnrichmentRecord
from talentsync.processors.base import BaseProcessor
from talentsync.queue_manager import ClaimedEntry, EnrichmentQueue
from talentsync.schemas.enrichment import EnrichmentProfile
from talentsync.services.enrichment import EnrichmentService
from talentsync.utils.pdf_extractor import ExtractionError, extract_text_from_file

RESUME_DOWNLOAD_TIMEOUT = 30.0


def render_payload_profile(profile: Dict[str, Any]) -> str:
    """Flatten a caller-supplied structured profile into analyzer text."""
    lines = []
    for key, value in profile.items():
        label = key.replace("_", " ").capitalize()
        if isinstance(value, list):
            lines.append(f"{label}:")
            for item in value:
                if isinstance(item, dict):
                    lines.append("- " + ", ".join(f"{k}: {v}" for k, v in item.items() if v not in (None, "")))
                else:
                    lines.append(f"- {item}")
        elif isinstance(value, dict):
            lines.append(f"{label}: " + ", ".join(f"{k}: {v}" for k, v in value.items() if v not in (None, "")))
        elif value not in (None, ""):
            lines.append(f"{label}: {value}")
    return "\n".join(lines)


class EnrichmentProcessor(BaseProcessor):
    """Enriches one candidate per claimed queue entry.

    Source text is taken from the first available of: payload resume_text,
    payload resume_url, the stored resume text, the ATS (resume document,
    else experiences and education), and a payload structured profile.
    """

    name = "enrich"

    def __init__(
        self,
        db: Session,
        queue: EnrichmentQueue,
        analyzer: Analyzer,
        retention: RetentionConfig,
        ats_client: Optional[JobAdderClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        malformed_retries: int = 2,
    ):
        super().__init__(db, queue)
        self.analyzer = analyzer
        self.ats_client = ats_client
        self.http_client = http_client
        self.malformed_retries = malformed_retries
        self.enrichment = EnrichmentService(db, retention)

    async def process(self, entry: ClaimedEntry) -> CandidateEnrichmentRecord:
        """Enrich the entry's candidate and store the scored record.

        Raises:
            ConsentRequired: The candidate has not consented to data use
            PermanentExternalError: No usable source, or the analyzer rejected it
            TransientExternalError: A collaborator is temporarily unavailable
        """
        candidate = self.enrichment.get_candidate(entry.tenant_id, entry.candidate_id)
        payload = entry.payload or {}

        if candidate.data_usage_consent is not True:
            raise ConsentRequired(f"Candidate {candidate.id} has not consented to data usage")

        self.logger.info(
            "Starting enrichment",
            entry_id=entry.id,
            tenant_id=entry.tenant_id,
            candidate_id=candidate.id,
            attempt=entry.retry_count + 1,
        )

        source_text = await self._source_text(entry.tenant_id, candidate, payload)
        profile = await self._analyze(source_text, candidate.id)

        record = self.enrichment.upsert_enrichment(entry.tenant_id, candidate.id, profile, consent=True)
        self.logger.info(
            "Enrichment complete",
            entry_id=entry.id,
            candidate_id=candidate.id,
            overall_score=record.overall_score,
            tier=record.tier,
        )
        return record

    async def _source_text(self, tenant_id: str, candidate: Candidate, payload: Dict[str, Any]) -> str:
        if payload.get("resume_text"):
            return payload["resume_text"]

        if payload.get("resume_url"):
            text = await self._download_resume(payload["resume_url"])
            if text.strip():
                return text

        if candidate.resume_text:
            return candidate.resume_text

        if self.ats_client is not None and candidate.external_id:
            text = await self._fetch_from_ats(tenant_id, candidate)
            if text:
                return text

        if payload.get("profile"):
            return render_payload_profile(payload["profile"])

        raise PermanentExternalError(f"No profile source for candidate {candidate.id}", service="enrichment")

    async def _download_resume(self, url: str) -> str:
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=RESUME_DOWNLOAD_TIMEOUT)

        try:
            response = await self.http_client.get(url, timeout=RESUME_DOWNLOAD_TIMEOUT, follow_redirects=True)
        except httpx.TransportError as e:
            raise TransientExternalError(f"Resume download failed: {e}", service="resume") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientExternalError(
                f"Resume download failed: {response.status_code}", status_code=response.status_code, service="resume"
            )
        if response.status_code >= 400:
            raise PermanentExternalError(
                f"Resume download rejected: {response.status_code}", status_code=response.status_code, service="resume"
            )

        filename = url.split("?", 1)[0].rsplit("/", 1)[-1] or "resume"
        return await self._extract(response.content, filename, response.headers.get("content-type"))

    async def _extract(self, content: bytes, filename: str, content_type: Optional[str]) -> str:
        # CPU-bound; keep it off the event loop
        try:
            return await asyncio.to_thread(extract_text_from_file, content, filename, content_type)
        except ExtractionError as e:
            raise PermanentExternalError(f"Unreadable resume {filename}: {e}", service="resume") from e

    async def _fetch_from_ats(self, tenant_id: str, candidate: Candidate) -> Optional[str]:
        resume = await self.ats_client.get_candidate_resume(tenant_id, candidate.external_id)
        if resume is not None and resume.content:
            text = await self._extract(resume.content, resume.file_name, resume.file_type)
            if text.strip():
                candidate.resume_text = text
                self.db.commit()
                return text

        ats_candidate = await self.ats_client.get_candidate(tenant_id, candidate.external_id)
        experiences = await self.ats_client.get_candidate_experiences(tenant_id, candidate.external_id)
        education = await self.ats_client.get_candidate_education(tenant_id, candidate.external_id)
        if not (experiences or education or ats_candidate.skills):
            return None
        return render_profile_text(ats_candidate, experiences, education)

    async def _analyze(self, source_text: str, candidate_id: int) -> EnrichmentProfile:
        """Run the analyzer, retrying malformed output a bounded number of times."""
        attempts = self.malformed_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.analyzer.analyze(source_text)
            except MalformedResponseError as e:
                if attempt >= attempts:
                    raise
                self.logger.warning(
                    "Malformed enrichment response, retrying",
                    candidate_id=candidate_id,
                    attempt=attempt,
                    error=str(e),
                )
        raise MalformedResponseError("Analyzer produced no result", service="claude")
