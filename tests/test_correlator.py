"""
Tests for talentsync.correlator.EventCorrelator.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from talentsync.config import CorrelatorConfig
from talentsync.correlator import EventCorrelator
from talentsync.integrations.ses import NotificationResult
from talentsync.models import Event, SweepLock
from talentsync.schemas.events import RETARGET_EVENT, validate_event_metadata
from talentsync.utils.time import utc_now

from tests.helpers import TENANT_ID, FakeNotifier


async def no_sleep(_seconds):
    return None


@pytest.fixture
def now():
    return utc_now()


@pytest.fixture
def record_event(db, tenant, job):
    def _record(event_type, at, session_id="s-1", **metadata):
        event = Event(
            tenant_id=tenant.id,
            type=event_type,
            subject_id=str(job.id),
            session_id=session_id,
            timestamp=at,
            event_metadata=validate_event_metadata(event_type, metadata),
        )
        db.add(event)
        db.commit()
        return event

    return _record


def make_correlator(db, notifier, **overrides):
    return EventCorrelator(db, notifier, CorrelatorConfig(**overrides), sleep=no_sleep)


def hold_lock(db, until):
    db.add(SweepLock(name="correlator", tenant_id=TENANT_ID, owner="other", locked_until=until))
    db.commit()


def derived_events(db):
    return list(db.execute(select(Event).where(Event.type == RETARGET_EVENT)).scalars())


class TestDetection:
    async def test_completed_application_derives_nothing(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        record_event("apply_completed", now - timedelta(minutes=20))

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert report.checked == 1
        assert report.abandoned == 0
        assert derived_events(db) == []
        assert notifier.sent == []

    async def test_abandoned_application_derives_exactly_one_event(self, db, notifier, record_event, now):
        origin = record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        correlator = make_correlator(db, notifier)

        first = await correlator.sweep(TENANT_ID, now=now)
        second = await correlator.sweep(TENANT_ID, now=now + timedelta(minutes=5))

        derived = derived_events(db)
        assert first.abandoned == 1
        assert second.abandoned == 0
        assert len(derived) == 1
        assert derived[0].origin_event_id == origin.id
        assert derived[0].event_metadata["time_since_started_seconds"] == 1800

    async def test_completion_in_another_session_does_not_count(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30), session_id="s-1")
        record_event("apply_completed", now - timedelta(minutes=20), session_id="s-2")

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)
        assert report.abandoned == 1

    async def test_events_outside_window_are_ignored(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(hours=3))
        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)
        assert report.checked == 0

    async def test_grace_period_defers_judgement(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=5))
        report = await make_correlator(db, notifier, grace_minutes=10).sweep(TENANT_ID, now=now)
        assert report.checked == 0

    async def test_held_lock_skips_sweep(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30))
        hold_lock(db, utc_now() + timedelta(minutes=5))

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert report.skipped is True
        assert derived_events(db) == []

    async def test_expired_lock_is_taken_over(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30))
        hold_lock(db, utc_now() - timedelta(minutes=5))

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)
        assert report.skipped is False
        assert report.abandoned == 1


class TestNotification:
    async def test_notification_sent_and_recorded(self, db, notifier, record_event, job, now):
        record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com", first_name="Ada")

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert report.notified == 1
        destination, params = notifier.sent[0]
        assert destination == "ada@example.com"
        assert params["firstName"] == "Ada"
        assert params["jobTitle"] == job.title
        assert params["companyName"] == "Acme Recruiting"
        assert params["applicationUrl"].endswith(f"/jobs/{job.id}")

        notification = derived_events(db)[0].event_metadata["notification"]
        assert notification["status"] == "sent"
        assert notification["message_id"] == "msg-1"

    async def test_no_email_means_notification_skipped(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30))

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert report.abandoned == 1
        assert notifier.sent == []
        assert derived_events(db)[0].event_metadata["notification"]["status"] == "skipped"

    async def test_transient_failures_retried_then_recorded_as_failed(self, db, record_event, transient, now):
        record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        notifier = FakeNotifier([transient, transient, transient])

        report = await make_correlator(db, notifier, notify_attempts=3).sweep(TENANT_ID, now=now)

        assert len(notifier.sent) == 3
        assert report.failed == 1
        notification = derived_events(db)[0].event_metadata["notification"]
        assert notification["status"] == "failed"
        assert notification["attempts"] == 3

    async def test_transient_then_success(self, db, record_event, transient, now):
        record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        notifier = FakeNotifier([transient, NotificationResult(accepted=True, message_id="msg-2")])

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert report.notified == 1
        assert derived_events(db)[0].event_metadata["notification"]["attempts"] == 2

    async def test_rejected_send_is_not_retried(self, db, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30), email="bad@example.com")
        notifier = FakeNotifier([NotificationResult(accepted=False, error="MessageRejected: bad address")])

        report = await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert len(notifier.sent) == 1
        assert report.failed == 1

    async def test_annotation_written_once(self, db, notifier, record_event, now):
        record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        correlator = make_correlator(db, notifier)

        await correlator.sweep(TENANT_ID, now=now)
        await correlator.sweep(TENANT_ID, now=now + timedelta(minutes=1))

        assert len(notifier.sent) == 1


class SlowNotifier(FakeNotifier):
    """Runs ``during_send`` once while the first send is in flight."""

    def __init__(self, during_send):
        super().__init__()
        self.during_send = during_send

    async def send(self, destination, template_params):
        hook, self.during_send = self.during_send, None
        if hook is not None:
            await hook()
        return await super().send(destination, template_params)


class TestOverlappingSweeps:
    async def test_sweep_taking_over_expired_lease_does_not_resend(
        self, db, session_factory, notifier, record_event, now
    ):
        record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        other_db = session_factory()
        reports = []

        async def lease_expires_and_second_sweep_runs():
            db.execute(update(SweepLock).values(locked_until=utc_now() - timedelta(seconds=1)))
            db.commit()
            reports.append(await make_correlator(other_db, notifier).sweep(TENANT_ID, now=now))

        slow = SlowNotifier(lease_expires_and_second_sweep_runs)
        try:
            first = await make_correlator(db, slow).sweep(TENANT_ID, now=now)
        finally:
            other_db.close()

        assert reports[0].skipped is False
        assert reports[0].notified == 0
        assert notifier.sent == []
        assert len(slow.sent) == 1
        assert first.notified == 1
        db.expire_all()
        assert derived_events(db)[0].event_metadata["notification"]["status"] == "sent"

    async def test_send_interrupted_by_crash_is_marked_failed_not_resent(self, db, notifier, record_event, now):
        origin = record_event("apply_started", now - timedelta(minutes=30), email="ada@example.com")
        stale = (utc_now() - timedelta(hours=1)).isoformat()
        db.add(
            Event(
                tenant_id=TENANT_ID,
                type=RETARGET_EVENT,
                subject_id=origin.subject_id,
                session_id=origin.session_id,
                timestamp=now,
                origin_event_id=origin.id,
                event_metadata=validate_event_metadata(
                    RETARGET_EVENT,
                    {
                        "origin_event_id": origin.id,
                        "time_since_started_seconds": 1800,
                        "destination": "ada@example.com",
                        "notification": {"status": "sending", "at": stale},
                    },
                ),
            )
        )
        db.commit()

        await make_correlator(db, notifier).sweep(TENANT_ID, now=now)

        assert notifier.sent == []
        db.expire_all()
        notification = derived_events(db)[0].event_metadata["notification"]
        assert notification["status"] == "failed"
