"""
Tests for talentsync.processors.sync.SyncProcessor.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from talentsync.ats.base import ATSCandidate, ATSJob, ATSPage
from talentsync.errors import AuthError, MalformedResponseError
from talentsync.models import ATSConnection, Candidate, EnrichmentQueueEntry, Job
from talentsync.processors.sync import SyncProcessor
from talentsync.services import EnrichmentService
from talentsync.utils.time import utc_now

from tests.helpers import TENANT_ID


def as_record(record_type):
    """Raw dicts go through the real parser; prepared records pass through."""

    def parse(item):
        return record_type.from_api(item) if isinstance(item, dict) else item

    return parse


class FakeATS:
    """Serves pages from fixed lists and records the paging it was asked for."""

    def __init__(self, jobs=None, candidates=None, fail_candidates_at=None):
        self.jobs = jobs or []
        self.candidates = candidates or []
        self.fail_candidates_at = fail_candidates_at
        self.candidate_calls = []

    async def get_jobs(self, tenant_id, status="active", limit=100, offset=0):
        return ATSPage.parse(self.jobs[offset:offset + limit], as_record(ATSJob))

    async def get_candidates(self, tenant_id, status="active", updated_since=None, limit=100, offset=0):
        self.candidate_calls.append({"updated_since": updated_since, "offset": offset})
        if self.fail_candidates_at is not None and offset >= self.fail_candidates_at:
            raise MalformedResponseError("Expected a list response", service="jobadder")
        return ATSPage.parse(self.candidates[offset:offset + limit], as_record(ATSCandidate))


def ats_candidate(n, consent=True):
    return ATSCandidate(external_id=f"ext-{n}", first_name="Cand", last_name=str(n), data_usage_consent=consent)


def make_sync(db, queue, ats, page_size=2):
    return SyncProcessor(db, queue, ats, page_size=page_size)


def connection(db):
    return db.execute(select(ATSConnection).where(ATSConnection.tenant_id == TENANT_ID)).scalar_one()


class TestSync:
    async def test_upserts_jobs_and_candidates_across_pages(self, db, queue, tenant):
        ats = FakeATS(
            jobs=[ATSJob(external_id="j-1", title="Engineer"), ATSJob(external_id="j-2", title="Analyst", status="closed")],
            candidates=[ats_candidate(i) for i in range(5)],
        )

        stats = await make_sync(db, queue, ats).sync_tenant(TENANT_ID)

        assert stats.jobs == 2
        assert stats.total == 5
        assert stats.created == 5
        assert stats.enqueued == 5
        assert [c["offset"] for c in ats.candidate_calls] == [0, 2, 4]
        assert db.execute(select(Job).where(Job.external_id == "j-2")).scalar_one().is_active is False
        assert len(db.execute(select(Candidate)).scalars().all()) == 5

    async def test_only_consenting_candidates_are_enqueued(self, db, queue, tenant):
        ats = FakeATS(candidates=[ats_candidate(1), ats_candidate(2, consent=False)])

        stats = await make_sync(db, queue, ats).sync_tenant(TENANT_ID)

        assert stats.enqueued == 1
        assert stats.privacy_filtered == 1
        entries = db.execute(select(EnrichmentQueueEntry)).scalars().all()
        assert len(entries) == 1

    async def test_second_sync_is_incremental_and_updates(self, db, queue, tenant):
        ats = FakeATS(candidates=[ats_candidate(1)])
        sync = make_sync(db, queue, ats)

        await sync.sync_tenant(TENANT_ID)
        stats = await sync.sync_tenant(TENANT_ID)

        assert stats.updated == 1
        assert stats.created == 0
        assert ats.candidate_calls[0]["updated_since"] is None
        assert ats.candidate_calls[-1]["updated_since"].endswith("Z")

    async def test_full_sync_ignores_watermark(self, db, queue, tenant):
        ats = FakeATS(candidates=[ats_candidate(1)])
        sync = make_sync(db, queue, ats)

        await sync.sync_tenant(TENANT_ID)
        await sync.sync_tenant(TENANT_ID, full=True)

        assert ats.candidate_calls[-1]["updated_since"] is None

    async def test_interrupted_paging_keeps_watermark(self, db, queue, tenant):
        ats = FakeATS(candidates=[ats_candidate(i) for i in range(4)], fail_candidates_at=2)

        stats = await make_sync(db, queue, ats).sync_tenant(TENANT_ID)

        assert stats.errors == 1
        assert stats.total == 2
        assert connection(db).last_synced_at is None

    async def test_malformed_records_are_counted_and_paging_continues(self, db, queue, tenant):
        ats = FakeATS(
            jobs=[{"id": 1}, ATSJob(external_id="j-2", title="Analyst")],
            candidates=[ats_candidate(0), {"firstName": "No id"}, ats_candidate(2), ats_candidate(3)],
        )

        stats = await make_sync(db, queue, ats).sync_tenant(TENANT_ID)

        assert stats.jobs == 1
        assert stats.errors == 2
        assert stats.total == 4
        assert stats.created == 3
        assert [c["offset"] for c in ats.candidate_calls] == [0, 2, 4]
        assert connection(db).last_synced_at is not None

    async def test_local_withdrawal_survives_stale_ats_consent(self, db, queue, retention, tenant):
        sync = make_sync(db, queue, FakeATS(candidates=[ats_candidate(1)]))
        await sync.sync_tenant(TENANT_ID)
        candidate = db.execute(select(Candidate)).scalar_one()
        EnrichmentService(db, retention).update_consent(TENANT_ID, candidate.id, False, actor="user-1")
        queue.get_entry(TENANT_ID, candidate.id).status = "done"
        db.commit()

        stats = await sync.sync_tenant(TENANT_ID)

        db.refresh(candidate)
        assert candidate.data_usage_consent is False
        assert stats.enqueued == 0
        assert queue.get_entry(TENANT_ID, candidate.id).status == "done"

    async def test_ats_consent_newer_than_withdrawal_is_taken(self, db, queue, retention, tenant):
        sync = make_sync(db, queue, FakeATS(candidates=[ats_candidate(1)]))
        await sync.sync_tenant(TENANT_ID)
        candidate = db.execute(select(Candidate)).scalar_one()
        EnrichmentService(db, retention).update_consent(TENANT_ID, candidate.id, False, actor="user-1")

        regranted = ats_candidate(1)
        regranted.updated_at = (utc_now() + timedelta(minutes=5)).isoformat() + "Z"
        sync.client = FakeATS(candidates=[regranted])
        await sync.sync_tenant(TENANT_ID)

        db.refresh(candidate)
        assert candidate.data_usage_consent is True

    async def test_consent_withdrawn_in_ats_is_recorded(self, db, queue, tenant):
        sync = make_sync(db, queue, FakeATS(candidates=[ats_candidate(1)]))
        await sync.sync_tenant(TENANT_ID)

        sync.client = FakeATS(candidates=[ats_candidate(1, consent=False)])
        await sync.sync_tenant(TENANT_ID)

        candidate = db.execute(select(Candidate)).scalar_one()
        assert candidate.data_usage_consent is False
        assert candidate.consent_updated_at is not None

    async def test_disconnected_tenant_raises(self, db, queue, tenant):
        connection(db).status = "broken"
        db.commit()

        with pytest.raises(AuthError):
            await make_sync(db, queue, FakeATS()).sync_tenant(TENANT_ID)
