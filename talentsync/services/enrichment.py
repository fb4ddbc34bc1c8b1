"""Candidate enrichment records: persistence, scoring and privacy."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from talentsync.benchmark.defaults import GENERAL_TEMPLATE_NAME
from talentsync.benchmark.engine import evaluate
from talentsync.config import RetentionConfig
from talentsync.errors import CandidateNotFoundError
from talentsync.models import Candidate, CandidateEnrichmentRecord, EnrichmentQueueEntry
from talentsync.schemas.benchmarks import BenchmarkResult
from talentsync.schemas.enrichment import EnrichmentProfile
from talentsync.services.access_log import AccessLogService
from talentsync.services.benchmarks import BenchmarkTemplateService, definition_of
from talentsync.utils.time import utc_now

logger = structlog.get_logger()

Evaluator = Callable[..., BenchmarkResult]


@dataclass
class NotYetEnriched:
    """Score requested for a candidate with no completed enrichment."""

    candidate_id: int
    queue_status: Optional[str] = None
    status: str = "not_enriched"


class EnrichmentService:
    """Reads and writes CandidateEnrichmentRecord rows.

    The benchmark evaluator is injected so the scoring path has no hidden
    imports and can be swapped in tests.
    """

    def __init__(
        self,
        db: Session,
        retention: RetentionConfig,
        evaluator: Evaluator = evaluate,
    ):
        self.db = db
        self.retention_days = retention.enrichment_retention_days
        self.evaluator = evaluator
        self.access_log = AccessLogService(db, retention)
        self.templates = BenchmarkTemplateService(db)

    def get_candidate(self, tenant_id: str, candidate_id: int) -> Candidate:
        candidate = self.db.execute(
            select(Candidate).where(Candidate.id == candidate_id, Candidate.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if candidate is None:
            raise CandidateNotFoundError(f"Candidate {candidate_id} not found")
        return candidate

    def _record(self, tenant_id: str, candidate_id: int) -> Optional[CandidateEnrichmentRecord]:
        return self.db.execute(
            select(CandidateEnrichmentRecord).where(
                CandidateEnrichmentRecord.candidate_id == candidate_id,
                CandidateEnrichmentRecord.tenant_id == tenant_id,
            )
        ).scalar_one_or_none()

    def upsert_enrichment(
        self,
        tenant_id: str,
        candidate_id: int,
        profile: EnrichmentProfile,
        consent: bool,
        actor: str = "system:enrichment_worker",
    ) -> CandidateEnrichmentRecord:
        """Store an enrichment and its default-template score.

        Creates the record on first enrichment (with a retention date) and
        updates it in place afterwards.
        """
        now = utc_now()
        result = self.evaluator(profile)

        record = self._record(tenant_id, candidate_id)
        created = record is None
        if created:
            record = CandidateEnrichmentRecord(tenant_id=tenant_id, candidate_id=candidate_id)
            self.db.add(record)
        if created or record.deleted_at is not None:
            record.data_retention_date = now + timedelta(days=self.retention_days)
            record.deleted_at = None

        record.enrichment = profile.model_dump(mode="json")
        record.confidence_score = profile.confidence_score
        record.data_usage_consent = consent
        record.enriched_at = now
        self._apply_result(record, result)

        self.access_log.record(tenant_id, candidate_id, actor, "enrich", reason="AI enrichment", commit=False)
        self.db.commit()

        logger.info(
            "Enrichment stored",
            tenant_id=tenant_id,
            candidate_id=candidate_id,
            created=created,
            overall_score=record.overall_score,
            tier=record.tier,
        )
        return record

    @staticmethod
    def _apply_result(record: CandidateEnrichmentRecord, result: BenchmarkResult) -> None:
        """Store a result under its template key.

        The top-level score, tier, strengths and development areas always
        hold the general-template result; custom templates only add keys.
        """
        general = result.template_id is None
        key = GENERAL_TEMPLATE_NAME if general else str(result.template_id)
        scores = dict(record.benchmark_scores or {})
        scores[key] = result.model_dump(mode="json")
        record.benchmark_scores = scores
        if not general:
            return
        record.overall_score = result.overall_score
        record.tier = result.tier
        record.strengths = result.strengths
        record.development_areas = result.development_areas

    def get_record(
        self,
        tenant_id: str,
        candidate_id: int,
        actor: str,
        reason: Optional[str] = None,
    ) -> Optional[CandidateEnrichmentRecord]:
        """Privileged read of a live enrichment record; every read is logged."""
        record = self._record(tenant_id, candidate_id)
        if record is None or not record.is_live:
            return None
        self.access_log.record(tenant_id, candidate_id, actor, "view", reason=reason)
        return record

    def get_candidate_score(
        self,
        tenant_id: str,
        candidate_id: int,
        benchmark_template_id: Optional[int] = None,
        actor: str = "system:api",
    ) -> Union[BenchmarkResult, NotYetEnriched]:
        """Score a candidate against a template, or the general template if none given.

        Returns:
            BenchmarkResult, or NotYetEnriched when no live enrichment exists

        Raises:
            CandidateNotFoundError: If the candidate is not in this tenant
            TemplateNotFoundError: If the template is not visible to this tenant
        """
        self.get_candidate(tenant_id, candidate_id)
        record = self._record(tenant_id, candidate_id)
        if record is None or not record.is_live:
            queue_status = self.db.execute(
                select(EnrichmentQueueEntry.status).where(
                    EnrichmentQueueEntry.tenant_id == tenant_id,
                    EnrichmentQueueEntry.candidate_id == candidate_id,
                )
            ).scalar_one_or_none()
            return NotYetEnriched(candidate_id=candidate_id, queue_status=queue_status)

        profile = EnrichmentProfile.model_validate(record.enrichment)
        if benchmark_template_id is None:
            result = self.evaluator(profile)
        else:
            template = self.templates.get(tenant_id, benchmark_template_id)
            result = self.evaluator(
                profile,
                definition_of(template),
                template_id=template.id,
                template_name=template.name,
                template_version=template.version,
            )
            self.templates.mark_referenced(template)

        self._apply_result(record, result)
        self.access_log.record(
            tenant_id,
            candidate_id,
            actor,
            "score",
            reason=f"Benchmark: {result.template_name}",
            commit=False,
        )
        self.db.commit()
        return result

    def update_consent(self, tenant_id: str, candidate_id: int, consent: bool, actor: str) -> Candidate:
        """Record a consent decision; withdrawal logically deletes enrichment data."""
        candidate = self.get_candidate(tenant_id, candidate_id)
        now = utc_now()
        candidate.data_usage_consent = consent
        candidate.consent_updated_at = now

        if not consent:
            record = self._record(tenant_id, candidate_id)
            if record is not None and record.deleted_at is None:
                self._erase(record, now)
                self.access_log.record(
                    tenant_id, candidate_id, actor, "delete", reason="Consent withdrawn", commit=False
                )

        self.db.commit()
        logger.info("Consent updated", tenant_id=tenant_id, candidate_id=candidate_id, consent=consent)
        return candidate

    @staticmethod
    def _erase(record: CandidateEnrichmentRecord, now: datetime) -> None:
        record.deleted_at = now
        record.data_usage_consent = False
        record.enrichment = None
        record.benchmark_scores = None
        record.overall_score = None
        record.tier = None
        record.strengths = None
        record.development_areas = None
        record.confidence_score = None

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Logically delete records whose retention date has passed."""
        now = now or utc_now()
        result = self.db.execute(
            update(CandidateEnrichmentRecord)
            .where(
                CandidateEnrichmentRecord.deleted_at.is_(None),
                CandidateEnrichmentRecord.data_retention_date < now,
            )
            .values(
                deleted_at=now,
                data_usage_consent=False,
                enrichment=None,
                benchmark_scores=None,
                overall_score=None,
                tier=None,
                strengths=None,
                development_areas=None,
                confidence_score=None,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount:
            logger.info("Expired enrichment records deleted", count=result.rowcount)
        return result.rowcount
