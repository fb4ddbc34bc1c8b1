"""
Tests for talentsync.scheduler.Scheduler.
"""

import pytest

from talentsync.config import CorrelatorConfig, QueueConfig, RetentionConfig, SchedulerConfig
from talentsync.correlator import EventCorrelator
from talentsync.errors import AuthError
from talentsync.models import ATSConnection, Tenant
from talentsync.processors.sync import SyncStats
from talentsync.scheduler import Scheduler

from tests.helpers import TENANT_ID


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class RecordingSync:
    def __init__(self, calls, fail_for=()):
        self.calls = calls
        self.fail_for = fail_for

    async def sync_tenant(self, tenant_id, full=False):
        self.calls.append(tenant_id)
        if tenant_id in self.fail_for:
            raise AuthError(tenant_id, reason="refresh_rejected")
        return SyncStats()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sync_calls():
    return []


@pytest.fixture
def make_scheduler(session_factory, notifier, clock, sync_calls):
    def _make(fail_for=()):
        return Scheduler(
            session_factory,
            SchedulerConfig(interval=1, sync_interval_minutes=60, correlator_interval_minutes=15),
            lambda db: EventCorrelator(db, notifier, CorrelatorConfig()),
            RetentionConfig(),
            QueueConfig(),
            sync_factory=lambda db: RecordingSync(sync_calls, fail_for),
            clock=clock,
        )

    return _make


class TestCadence:
    async def test_tasks_run_once_per_interval(self, make_scheduler, clock, sync_calls, tenant):
        scheduler = make_scheduler()

        await scheduler.check_for_work()
        clock.now += 30 * 60
        await scheduler.check_for_work()
        clock.now += 31 * 60
        await scheduler.check_for_work()

        assert sync_calls == [TENANT_ID, TENANT_ID]

    async def test_correlation_covers_active_tenants(self, db, make_scheduler, tenant):
        db.add(Tenant(id="tenant-2", name="Other", is_active=True))
        db.add(Tenant(id="tenant-3", name="Gone", is_active=False))
        db.commit()

        reports = await make_scheduler().run_correlation()

        assert [r.tenant_id for r in reports] == [TENANT_ID, "tenant-2"]


class TestSync:
    async def test_only_connected_tenants_are_synced(self, db, make_scheduler, sync_calls, tenant):
        db.add(Tenant(id="tenant-2", name="Other", is_active=True))
        db.add(ATSConnection(tenant_id="tenant-2", provider="jobadder", status="broken"))
        db.commit()

        await make_scheduler().run_syncs()

        assert sync_calls == [TENANT_ID]

    async def test_failing_tenant_does_not_stop_others(self, db, make_scheduler, sync_calls, tenant):
        db.add(Tenant(id="tenant-0", name="First", is_active=True))
        db.add(ATSConnection(tenant_id="tenant-0", provider="jobadder", status="connected"))
        db.commit()

        results = await make_scheduler(fail_for=("tenant-0",)).run_syncs()

        assert sync_calls == ["tenant-0", TENANT_ID]
        assert list(results) == [TENANT_ID]


class TestRetention:
    def test_retention_runs(self, make_scheduler, tenant):
        counts = make_scheduler().run_retention()
        assert set(counts.values()) == {0}
