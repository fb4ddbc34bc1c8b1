"""JobAdder webhook ingress: verification, deduplication and dispatch."""

import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from cryptography.fernet import InvalidToken
from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from talentsync.ats.base import ATSCandidate, ATSJob
from talentsync.ats.jobadder.client import JobAdderClient
from talentsync.config import IngressConfig, QueueConfig
from talentsync.errors import InvalidPayload, InvalidSignature, MalformedResponseError
from talentsync.models import ATSConnection, Event, Tenant, WebhookDelivery
from talentsync.queue_manager import EnrichmentQueue
from talentsync.schemas.events import validate_event_metadata
from talentsync.schemas.webhooks import WebhookPayload
from talentsync.services.encryption import TokenCipher
from talentsync.services.records import find_candidate, find_job, upsert_candidate, upsert_job
from talentsync.utils.time import parse_timestamp, utc_now

logger = structlog.get_logger()

JOB_UPSERT_EVENTS = ("job.created", "job.updated")
CANDIDATE_UPSERT_EVENTS = ("candidate.created", "candidate.updated")


@dataclass
class WebhookOutcome:
    """Result of handling one delivery.

    ``error`` is the rejection code (InvalidSignature, InvalidPayload) when
    the delivery was not accepted.
    """

    accepted: bool
    duplicate: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    tenant_id: Optional[str] = None
    event_type: Optional[str] = None
    dedup_key: Optional[str] = None
    event_id: Optional[int] = None

    @property
    def status(self) -> str:
        if not self.accepted:
            return "rejected"
        return "duplicate" if self.duplicate else "accepted"

    @classmethod
    def rejected(cls, exc: Exception, tenant_id: Optional[str] = None) -> "WebhookOutcome":
        return cls(accepted=False, error=type(exc).__name__, message=str(exc), tenant_id=tenant_id)


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def dedup_key_for(payload: WebhookPayload, raw_body: bytes) -> str:
    if payload.delivery_id:
        return f"event:{payload.delivery_id}"
    digest = hashlib.sha256(raw_body + (payload.timestamp or "").encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def purge_deliveries(db: Session, older_than: datetime) -> int:
    """Delete dedup claims received before a cutoff."""
    result = db.execute(delete(WebhookDelivery).where(WebhookDelivery.received_at < older_than))
    db.commit()
    if result.rowcount:
        logger.info("Expired webhook claims removed", count=result.rowcount)
    return result.rowcount


class WebhookIngress:
    """Handles signed JobAdder deliveries, at most once per dedup key.

    A delivery is claimed by inserting a WebhookDelivery row before any side
    effect. If processing fails or is cancelled the claim is deleted so the
    ATS redelivery is processed again; a claim orphaned by a dead process
    is taken over once its lease expires.
    """

    def __init__(
        self,
        db: Session,
        cipher: TokenCipher,
        config: IngressConfig,
        queue_config: QueueConfig,
        ats_client: Optional[JobAdderClient] = None,
    ):
        self.db = db
        self.cipher = cipher
        self.config = config
        self.queue = EnrichmentQueue(db, queue_config)
        self.ats_client = ats_client

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        """Verify, deduplicate and apply one delivery.

        Returns:
            WebhookOutcome: accepted, duplicate or rejected

        Raises:
            Exception: Any processing failure after the claim; the claim is
                released first so a redelivery is processed
        """
        try:
            payload = self._parse(raw_body)
        except InvalidPayload as e:
            logger.warning("Invalid webhook payload", error=str(e))
            return WebhookOutcome.rejected(e)

        tenant_id = payload.tenant_id
        try:
            self._verify(tenant_id, raw_body, signature)
        except InvalidSignature as e:
            logger.warning("Invalid webhook signature", tenant_id=tenant_id, reason=str(e))
            return WebhookOutcome.rejected(e, tenant_id)

        key = dedup_key_for(payload, raw_body)
        log = logger.bind(tenant_id=tenant_id, event=payload.event, dedup_key=key)

        if not self._claim(tenant_id, key, payload.event):
            log.debug("Duplicate webhook delivery skipped", error_type="DuplicateDelivery")
            return WebhookOutcome(
                accepted=True, duplicate=True, tenant_id=tenant_id, event_type=payload.event, dedup_key=key
            )

        try:
            event = await self._apply(payload, key)
            self.db.execute(
                update(WebhookDelivery)
                .where(WebhookDelivery.tenant_id == tenant_id, WebhookDelivery.dedup_key == key)
                .values(status="processed", processed_at=utc_now())
            )
            self.db.commit()
        except MalformedResponseError as e:
            self._release(tenant_id, key)
            log.warning("Webhook record malformed", error=str(e))
            return WebhookOutcome.rejected(InvalidPayload(str(e)), tenant_id)
        except BaseException:
            # Includes cancellation; the claim must not outlive a handler that never finished
            self._release(tenant_id, key)
            log.error("Webhook processing failed, claim released", exc_info=True)
            raise

        log.info("Webhook processed", event_id=event.id)
        return WebhookOutcome(
            accepted=True, tenant_id=tenant_id, event_type=payload.event, dedup_key=key, event_id=event.id
        )

    def _parse(self, raw_body: bytes) -> WebhookPayload:
        try:
            return WebhookPayload.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            raise InvalidPayload(f"Malformed webhook payload: {str(e)[:300]}") from e

    def _verify(self, tenant_id: str, raw_body: bytes, signature: Optional[str]) -> None:
        if not signature:
            raise InvalidSignature("Missing signature header")

        row = self.db.execute(
            select(ATSConnection.webhook_secret)
            .join(Tenant, Tenant.id == ATSConnection.tenant_id)
            .where(ATSConnection.tenant_id == tenant_id, Tenant.is_active.is_(True))
        ).first()
        if row is None or not row.webhook_secret:
            raise InvalidSignature("Unknown tenant or no webhook secret")

        try:
            secret = self.cipher.decrypt(row.webhook_secret)
        except InvalidToken as e:
            raise InvalidSignature("Webhook secret unreadable") from e

        provided = signature.strip()
        if provided.startswith("sha256="):
            provided = provided[len("sha256="):]
        expected = compute_signature(secret, raw_body).encode("ascii")
        if not hmac.compare_digest(provided.lower().encode("utf-8"), expected):
            raise InvalidSignature("Signature mismatch")

    def _claim(self, tenant_id: str, key: str, event_type: str) -> bool:
        """Claim a dedup key.

        Returns False if the key was processed within the retention window,
        or is still being processed within its lease. A claim left in
        ``processing`` past the lease (crashed or killed handler) is taken over.
        """
        now = utc_now()
        cutoff = now - timedelta(hours=self.config.dedup_retention_hours)
        lease_cutoff = now - timedelta(seconds=self.config.claim_lease_seconds)

        existing = self.db.execute(
            select(WebhookDelivery).where(WebhookDelivery.tenant_id == tenant_id, WebhookDelivery.dedup_key == key)
        ).scalar_one_or_none()

        if existing is not None:
            if existing.status == "processing":
                stale = WebhookDelivery.received_at < lease_cutoff
            else:
                stale = WebhookDelivery.received_at < cutoff
            # Recycle the row, guarded against a concurrent recycle
            result = self.db.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.id == existing.id,
                    WebhookDelivery.status == existing.status,
                    stale,
                )
                .values(received_at=now, status="processing", processed_at=None, event_type=event_type)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            return result.rowcount == 1

        self.db.add(WebhookDelivery(tenant_id=tenant_id, dedup_key=key, event_type=event_type, received_at=now))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def _release(self, tenant_id: str, key: str) -> None:
        self.db.rollback()
        self.db.execute(
            delete(WebhookDelivery).where(WebhookDelivery.tenant_id == tenant_id, WebhookDelivery.dedup_key == key)
        )
        self.db.commit()

    async def _apply(self, payload: WebhookPayload, key: str) -> Event:
        tenant_id = payload.tenant_id
        external_id = payload.data.id
        event_type = payload.event

        if event_type in JOB_UPSERT_EVENTS:
            ats_job = await self._job_record(payload)
            job, created = upsert_job(self.db, tenant_id, ats_job)
            logger.info("Job upserted from webhook", tenant_id=tenant_id, job_id=job.id, created=created)

        elif event_type == "job.deleted":
            job = find_job(self.db, tenant_id, external_id)
            if job is None:
                logger.warning("Job not found for deletion", tenant_id=tenant_id, external_id=external_id)
            else:
                job.status = "Closed"
                job.is_active = False

        elif event_type in CANDIDATE_UPSERT_EVENTS:
            ats_candidate = await self._candidate_record(payload)
            candidate, created = upsert_candidate(self.db, tenant_id, ats_candidate)
            self.db.commit()
            if candidate.data_usage_consent:
                self.queue.enqueue(candidate.id, tenant_id, priority=self.config.enqueue_priority)
            else:
                logger.info("Candidate without consent not queued", tenant_id=tenant_id, candidate_id=candidate.id)

        elif event_type == "candidate.deleted":
            candidate = find_candidate(self.db, tenant_id, external_id)
            if candidate is not None:
                candidate.is_active = False

        else:
            logger.info("Unhandled webhook event recorded", tenant_id=tenant_id, event=event_type)

        event = Event(
            tenant_id=tenant_id,
            type=event_type,
            subject_id=external_id,
            timestamp=self._event_time(payload.timestamp),
            event_metadata=validate_event_metadata(
                event_type,
                {
                    "ats_event": event_type,
                    "external_id": external_id,
                    "dedup_key": key,
                    "sent_at": payload.timestamp,
                },
            ),
        )
        self.db.add(event)
        self.db.flush()
        return event

    @staticmethod
    def _event_time(timestamp: Optional[str]) -> datetime:
        if timestamp:
            try:
                return parse_timestamp(timestamp)
            except ValueError:
                logger.debug("Unparseable webhook timestamp", timestamp=timestamp)
        return utc_now()

    async def _job_record(self, payload: WebhookPayload) -> ATSJob:
        if self.ats_client is not None:
            return await self.ats_client.get_job(payload.tenant_id, payload.data.id)
        return ATSJob.from_api(payload.data.record())

    async def _candidate_record(self, payload: WebhookPayload) -> ATSCandidate:
        """Fetch the full candidate; deliveries may carry only the id."""
        if self.ats_client is not None:
            return await self.ats_client.get_candidate(payload.tenant_id, payload.data.id)
        return ATSCandidate.from_api(payload.data.record())

    def cleanup(self, older_than: Optional[datetime] = None) -> int:
        """Delete dedup claims older than the retention window."""
        return purge_deliveries(self.db, older_than or utc_now() - timedelta(hours=self.config.dedup_retention_hours))
