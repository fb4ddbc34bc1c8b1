"""
Tests for talentsync.webhooks.ingress.WebhookIngress.
"""

import asyncio
import json
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from talentsync.config import IngressConfig
from talentsync.models import Candidate, EnrichmentQueueEntry, Event, WebhookDelivery
from talentsync.utils.time import utc_now
from talentsync.webhooks.ingress import WebhookIngress, compute_signature

from tests.helpers import TENANT_ID, WEBHOOK_SECRET


def delivery(event="candidate.created", event_id="evt-1", consent=True, **data):
    body = {
        "event": event,
        "eventId": event_id,
        "timestamp": "2026-03-01T10:00:00Z",
        "metadata": {"tenantId": TENANT_ID},
        "data": {
            "id": 42,
            "firstName": "Grace",
            "lastName": "Hopper",
            "email": "grace@example.com",
            "customFields": {"dataUsageConsent": consent},
            **data,
        },
    }
    return json.dumps(body).encode()


def sign(raw: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return f"sha256={compute_signature(secret, raw)}"


class CancellingATS:
    async def get_candidate(self, tenant_id, external_id):
        raise asyncio.CancelledError()


def count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def ingress(db, cipher, queue_config, tenant):
    return WebhookIngress(db, cipher, IngressConfig(), queue_config)


class TestSignature:
    async def test_valid_signature_accepted(self, ingress):
        raw = delivery()
        outcome = await ingress.handle(raw, sign(raw))
        assert outcome.status == "accepted"
        assert outcome.event_type == "candidate.created"
        assert outcome.event_id is not None

    async def test_bare_hex_signature_accepted(self, ingress):
        raw = delivery()
        outcome = await ingress.handle(raw, compute_signature(WEBHOOK_SECRET, raw))
        assert outcome.accepted

    async def test_wrong_secret_rejected_without_side_effects(self, db, ingress):
        raw = delivery()
        outcome = await ingress.handle(raw, sign(raw, "not-the-secret"))

        assert outcome.status == "rejected"
        assert outcome.error == "InvalidSignature"
        assert count(db, Event) == 0
        assert count(db, Candidate) == 0
        assert count(db, WebhookDelivery) == 0

    async def test_missing_signature_rejected(self, ingress):
        outcome = await ingress.handle(delivery(), None)
        assert outcome.error == "InvalidSignature"

    async def test_tampered_body_rejected(self, ingress):
        raw = delivery()
        signature = sign(raw)
        outcome = await ingress.handle(raw.replace(b"Grace", b"Alan"), signature)
        assert outcome.error == "InvalidSignature"

    async def test_unknown_tenant_rejected(self, ingress):
        raw = delivery().replace(TENANT_ID.encode(), b"tenant-404")
        outcome = await ingress.handle(raw, sign(raw))
        assert outcome.error == "InvalidSignature"


class TestPayload:
    async def test_unparseable_body_is_invalid_payload(self, ingress):
        outcome = await ingress.handle(b"{not json", "sha256=00")
        assert outcome.error == "InvalidPayload"

    async def test_missing_event_is_invalid_payload(self, ingress):
        raw = json.dumps({"data": {"id": 1}, "metadata": {"tenantId": TENANT_ID}}).encode()
        outcome = await ingress.handle(raw, sign(raw))
        assert outcome.error == "InvalidPayload"


class TestDeduplication:
    async def test_replay_has_no_additional_side_effects(self, db, ingress):
        raw = delivery()
        first = await ingress.handle(raw, sign(raw))
        second = await ingress.handle(raw, sign(raw))

        assert first.status == "accepted"
        assert second.status == "duplicate"
        assert count(db, Event) == 1
        assert count(db, Candidate) == 1
        assert count(db, EnrichmentQueueEntry) == 1

    async def test_distinct_event_ids_both_processed(self, db, ingress):
        first = delivery(event_id="evt-1")
        second = delivery(event="candidate.updated", event_id="evt-2")
        await ingress.handle(first, sign(first))
        outcome = await ingress.handle(second, sign(second))

        assert outcome.status == "accepted"
        assert count(db, Event) == 2
        assert count(db, Candidate) == 1

    async def test_delivery_without_event_id_dedups_on_body(self, db, ingress):
        raw = delivery(event_id=None)
        await ingress.handle(raw, sign(raw))
        outcome = await ingress.handle(raw, sign(raw))
        assert outcome.duplicate
        assert outcome.dedup_key.startswith("sha256:")

    async def test_claim_older_than_window_is_reprocessed(self, db, ingress):
        raw = delivery()
        await ingress.handle(raw, sign(raw))
        claim = db.execute(select(WebhookDelivery)).scalar_one()
        claim.received_at = utc_now() - timedelta(hours=100)
        db.commit()

        outcome = await ingress.handle(raw, sign(raw))
        assert outcome.status == "accepted"
        assert count(db, Event) == 2

    async def test_cancelled_handler_releases_claim(self, db, cipher, queue_config, tenant):
        raw = delivery()
        cancelled = WebhookIngress(db, cipher, IngressConfig(), queue_config, ats_client=CancellingATS())

        with pytest.raises(asyncio.CancelledError):
            await cancelled.handle(raw, sign(raw))
        assert count(db, WebhookDelivery) == 0

        outcome = await WebhookIngress(db, cipher, IngressConfig(), queue_config).handle(raw, sign(raw))
        assert outcome.status == "accepted"
        assert count(db, Candidate) == 1

    async def test_orphaned_claim_taken_over_after_lease(self, db, ingress):
        raw = delivery()
        db.add(
            WebhookDelivery(
                tenant_id=TENANT_ID,
                dedup_key="event:evt-1",
                status="processing",
                received_at=utc_now() - timedelta(seconds=IngressConfig().claim_lease_seconds + 60),
            )
        )
        db.commit()

        outcome = await ingress.handle(raw, sign(raw))

        assert outcome.status == "accepted"
        assert count(db, Event) == 1
        assert db.execute(select(WebhookDelivery.status)).scalar_one() == "processed"

    async def test_claim_within_lease_is_duplicate(self, db, ingress):
        raw = delivery()
        db.add(WebhookDelivery(tenant_id=TENANT_ID, dedup_key="event:evt-1", status="processing"))
        db.commit()

        outcome = await ingress.handle(raw, sign(raw))

        assert outcome.duplicate
        assert count(db, Event) == 0

    async def test_cleanup_removes_expired_claims(self, db, ingress):
        raw = delivery()
        await ingress.handle(raw, sign(raw))
        assert ingress.cleanup(older_than=utc_now() + timedelta(minutes=1)) == 1
        assert count(db, WebhookDelivery) == 0


class TestDispatch:
    async def test_consenting_candidate_is_enqueued_at_webhook_priority(self, db, ingress):
        raw = delivery()
        await ingress.handle(raw, sign(raw))

        candidate = db.execute(select(Candidate)).scalar_one()
        entry = db.execute(select(EnrichmentQueueEntry)).scalar_one()
        assert candidate.external_id == "42"
        assert candidate.data_usage_consent is True
        assert entry.candidate_id == candidate.id
        assert entry.priority == IngressConfig().enqueue_priority

    async def test_candidate_without_consent_is_not_enqueued(self, db, ingress):
        raw = delivery(consent=False)
        outcome = await ingress.handle(raw, sign(raw))

        assert outcome.accepted
        assert count(db, Candidate) == 1
        assert count(db, EnrichmentQueueEntry) == 0

    async def test_job_deleted_closes_local_job(self, db, ingress, job):
        raw = json.dumps(
            {
                "event": "job.deleted",
                "eventId": "evt-9",
                "metadata": {"tenantId": TENANT_ID},
                "data": {"id": job.external_id},
            }
        ).encode()
        await ingress.handle(raw, sign(raw))

        db.refresh(job)
        assert job.is_active is False
        assert job.status == "Closed"

    async def test_event_metadata_records_dedup_key(self, db, ingress):
        raw = delivery()
        outcome = await ingress.handle(raw, sign(raw))

        event = db.get(Event, outcome.event_id)
        assert event.type == "candidate.created"
        assert event.subject_id == "42"
        assert event.event_metadata["kind"] == "webhook"
        assert event.event_metadata["dedup_key"] == "event:evt-1"

    async def test_malformed_record_releases_claim(self, db, ingress):
        raw = delivery(event="job.created")  # no title
        outcome = await ingress.handle(raw, sign(raw))

        assert outcome.error == "InvalidPayload"
        assert count(db, WebhookDelivery) == 0
