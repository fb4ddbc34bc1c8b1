"""Abandoned-application detection and retargeting notifications."""

import asyncio
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy import and_, delete, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from talentsync.ats.resilience import backoff_delay
from talentsync.config import CorrelatorConfig
from talentsync.errors import TransientExternalError
from talentsync.integrations.ses import NotificationResult, Notifier
from talentsync.models import Event, Job, SweepLock, Tenant
from talentsync.schemas.events import (
    RETARGET_EVENT,
    NotificationStatus,
    RetargetMetadata,
    TrackingMetadata,
    validate_event_metadata,
)
from talentsync.utils.time import to_naive_utc, utc_now

logger = structlog.get_logger()

LOCK_NAME = "correlator"

# How far back pending notifications left by an interrupted sweep are retried
PENDING_LOOKBACK = timedelta(days=1)


@dataclass
class SweepReport:
    tenant_id: str
    skipped: bool = False
    checked: int = 0
    abandoned: int = 0
    notified: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class EventCorrelator:
    """Turns apply_started events with no matching apply_completed into retarget_triggered.

    A sweep holds a per-tenant SweepLock. Each origin event yields at most one
    derived event: the sweep skips origins that already have one, and the
    unique (type, origin_event_id) constraint rejects a racing insert. The
    only later change to a derived event is its notification annotation:
    pending is moved to sending under a renewed lease before the email goes
    out, so an overlapping sweep never sends it a second time.
    """

    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        config: CorrelatorConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.config = config
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.owner = uuid.uuid4().hex

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _acquire_lock(self, tenant_id: str) -> bool:
        now = utc_now()
        until = now + timedelta(seconds=self.config.lock_ttl)

        # Take over an expired lock
        result = self.db.execute(
            update(SweepLock)
            .where(
                SweepLock.name == LOCK_NAME,
                SweepLock.tenant_id == tenant_id,
                SweepLock.locked_until < now,
            )
            .values(owner=self.owner, locked_until=until)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.db.commit()
            return True
        self.db.rollback()

        self.db.add(SweepLock(name=LOCK_NAME, tenant_id=tenant_id, owner=self.owner, locked_until=until))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def _renew_lock(self, tenant_id: str) -> bool:
        """Extend our lease; False if it expired and another sweep took it over."""
        result = self.db.execute(
            update(SweepLock)
            .where(
                SweepLock.name == LOCK_NAME,
                SweepLock.tenant_id == tenant_id,
                SweepLock.owner == self.owner,
            )
            .values(locked_until=utc_now() + timedelta(seconds=self.config.lock_ttl))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def _release_lock(self, tenant_id: str) -> None:
        self.db.rollback()
        self.db.execute(
            delete(SweepLock).where(
                SweepLock.name == LOCK_NAME,
                SweepLock.tenant_id == tenant_id,
                SweepLock.owner == self.owner,
            )
        )
        self.db.commit()

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def sweep(self, tenant_id: str, now: Optional[datetime] = None) -> SweepReport:
        """Run one correlation pass for a tenant.

        Args:
            tenant_id: Tenant to sweep
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            SweepReport; ``skipped`` is True if another sweep holds the lock
        """
        now = to_naive_utc(now) if now else utc_now()
        report = SweepReport(tenant_id=tenant_id)

        if not self._acquire_lock(tenant_id):
            logger.info("Correlator sweep already running", tenant_id=tenant_id)
            report.skipped = True
            return report

        try:
            for origin in self._candidates(tenant_id, now):
                report.checked += 1
                if self._completed(origin):
                    continue
                if self._derive(origin, now) is not None:
                    report.abandoned += 1

            self._fail_interrupted(tenant_id, now)
            for derived in self._pending_notifications(tenant_id, now):
                # Each send may take a while; hold the lease for the next one
                if not self._renew_lock(tenant_id):
                    logger.warning("Correlator lock lost, stopping notifications", tenant_id=tenant_id)
                    break
                status = await self._notify(derived)
                if status == "sent":
                    report.notified += 1
                elif status == "failed":
                    report.failed += 1
        finally:
            self._release_lock(tenant_id)

        logger.info("Correlator sweep complete", **report.to_dict())
        return report

    def _candidates(self, tenant_id: str, now: datetime) -> List[Event]:
        window_start = now - timedelta(minutes=self.config.window_minutes)
        window_end = now - timedelta(minutes=self.config.grace_minutes)
        derived = aliased(Event)

        already_derived = exists().where(
            derived.type == RETARGET_EVENT,
            derived.origin_event_id == Event.id,
        )
        return list(
            self.db.execute(
                select(Event)
                .where(
                    Event.tenant_id == tenant_id,
                    Event.type == "apply_started",
                    Event.timestamp >= window_start,
                    Event.timestamp < window_end,
                    ~already_derived,
                )
                .order_by(Event.timestamp.asc(), Event.id.asc())
            ).scalars()
        )

    def _completed(self, origin: Event) -> bool:
        completed = self.db.execute(
            select(Event.id)
            .where(
                and_(
                    Event.tenant_id == origin.tenant_id,
                    Event.type == "apply_completed",
                    Event.subject_id == origin.subject_id,
                    Event.session_id == origin.session_id,
                    Event.timestamp > origin.timestamp,
                )
            )
            .limit(1)
        ).first()
        return completed is not None

    def _derive(self, origin: Event, now: datetime) -> Optional[Event]:
        tracking = TrackingMetadata.model_validate(origin.event_metadata or {})
        metadata = {
            "origin_event_id": origin.id,
            "time_since_started_seconds": int((now - origin.timestamp).total_seconds()),
            "destination": tracking.email,
            "notification": {"status": "pending" if tracking.email else "skipped"},
        }
        derived = Event(
            tenant_id=origin.tenant_id,
            type=RETARGET_EVENT,
            subject_id=origin.subject_id,
            session_id=origin.session_id,
            timestamp=now,
            origin_event_id=origin.id,
            event_metadata=validate_event_metadata(RETARGET_EVENT, metadata),
        )
        self.db.add(derived)
        try:
            self.db.commit()
        except IntegrityError:
            # Another sweep derived it first
            self.db.rollback()
            return None

        logger.info(
            "Abandoned application detected",
            tenant_id=origin.tenant_id,
            origin_event_id=origin.id,
            event_id=derived.id,
            job_id=origin.subject_id,
        )
        return derived

    def _retarget_events(self, tenant_id: str, now: datetime, status: str) -> List[Event]:
        rows = self.db.execute(
            select(Event)
            .where(
                Event.tenant_id == tenant_id,
                Event.type == RETARGET_EVENT,
                Event.timestamp >= now - PENDING_LOOKBACK,
            )
            .order_by(Event.id.asc())
        ).scalars()
        return [e for e in rows if RetargetMetadata.model_validate(e.event_metadata).notification.status == status]

    def _pending_notifications(self, tenant_id: str, now: datetime) -> List[Event]:
        return self._retarget_events(tenant_id, now, "pending")

    def _fail_interrupted(self, tenant_id: str, now: datetime) -> None:
        """Close out sends left in ``sending`` by a sweep that died mid-send.

        Whether the email went out is unknown, so they are recorded as failed
        rather than sent again.
        """
        cutoff = utc_now() - timedelta(seconds=self.config.lock_ttl)
        for derived in self._retarget_events(tenant_id, now, "sending"):
            metadata = RetargetMetadata.model_validate(derived.event_metadata)
            if metadata.notification.at is not None and metadata.notification.at >= cutoff:
                continue
            metadata.notification = NotificationStatus(
                status="failed",
                at=utc_now(),
                error="Interrupted before the send was confirmed",
                attempts=metadata.notification.attempts,
            )
            derived.event_metadata = validate_event_metadata(RETARGET_EVENT, metadata.model_dump(mode="json"))
            logger.warning("Interrupted notification marked failed", tenant_id=tenant_id, event_id=derived.id)
        self.db.commit()

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _template_params(self, derived: Event) -> Dict[str, Any]:
        origin = self.db.get(Event, derived.origin_event_id)
        tracking = TrackingMetadata.model_validate((origin.event_metadata if origin else None) or {})
        tenant = self.db.get(Tenant, derived.tenant_id)
        retargeting = (tenant.retargeting_config if tenant else None) or {}

        job = None
        if derived.subject_id and derived.subject_id.isdigit():
            job = self.db.execute(
                select(Job).where(Job.id == int(derived.subject_id), Job.tenant_id == derived.tenant_id)
            ).scalar_one_or_none()

        base_url = (retargeting.get("application_base_url") or self.config.application_base_url).rstrip("/")
        application_url = (job.raw or {}).get("applicationUrl") if job else None
        return {
            "firstName": tracking.first_name or "",
            "jobTitle": job.title if job else "",
            "jobLocation": (job.location or "") if job else "",
            "companyName": retargeting.get("company_name") or (tenant.name if tenant else ""),
            "applicationUrl": application_url or f"{base_url}/jobs/{derived.subject_id}",
        }

    async def _send(self, destination: str, params: Dict[str, Any]) -> NotificationStatus:
        """Send with a timeout per attempt and jittered backoff between attempts."""
        error = None
        attempts = self.config.notify_attempts
        for attempt in range(1, attempts + 1):
            try:
                result: NotificationResult = await asyncio.wait_for(
                    self.notifier.send(destination, params), timeout=self.config.notify_timeout
                )
            except (TransientExternalError, asyncio.TimeoutError) as e:
                error = str(e) or "Notification timed out"
                logger.warning("Notification attempt failed", attempt=attempt, error=error)
                if attempt < attempts:
                    await self.sleep(
                        backoff_delay(attempt, self.config.notify_backoff_base, self.config.notify_backoff_cap, self.rng)
                    )
                continue

            return NotificationStatus(
                status="sent" if result.accepted else "failed",
                at=utc_now(),
                error=result.error,
                attempts=attempt,
                message_id=result.message_id,
            )

        return NotificationStatus(status="failed", at=utc_now(), error=error, attempts=attempts)

    async def _notify(self, derived: Event) -> Optional[str]:
        self.db.refresh(derived)
        metadata = RetargetMetadata.model_validate(derived.event_metadata)
        if metadata.notification.status != "pending" or not metadata.destination:
            return None

        # Mark in flight before sending; a later sweep only picks up pending
        metadata.notification = NotificationStatus(status="sending", at=utc_now())
        derived.event_metadata = validate_event_metadata(RETARGET_EVENT, metadata.model_dump(mode="json"))
        self.db.commit()

        outcome = await self._send(metadata.destination, self._template_params(derived))

        # Annotate once, and only if nothing else has since
        self.db.refresh(derived)
        current = RetargetMetadata.model_validate(derived.event_metadata)
        if current.notification.status != "sending":
            return None
        current.notification = outcome
        derived.event_metadata = validate_event_metadata(RETARGET_EVENT, current.model_dump(mode="json"))
        self.db.commit()

        log = logger.info if outcome.status == "sent" else logger.warning
        log(
            "Retargeting notification recorded",
            tenant_id=derived.tenant_id,
            event_id=derived.id,
            status=outcome.status,
            attempts=outcome.attempts,
            error=outcome.error,
        )
        return outcome.status
