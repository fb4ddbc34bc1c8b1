"""
Shared fixtures for the TalentSync test suite.

Every test gets a fresh in-memory SQLite database. External services are
replaced by in-process doubles: httpx.MockTransport for JobAdder, and small
fake classes for the analyzer and the notifier.
"""

from datetime import timedelta
from typing import Optional

import pytest
from cryptography.fernet import Fernet

from talentsync.config import QueueConfig, RetentionConfig
from talentsync.database import create_engine_from_url, create_session_factory, init_db
from talentsync.errors import TransientExternalError
from talentsync.models import ATSConnection, Candidate, Job, Tenant
from talentsync.queue_manager import EnrichmentQueue
from talentsync.services import TokenCipher
from talentsync.utils.time import utc_now

from tests.helpers import TENANT_ID, WEBHOOK_SECRET, FakeAnalyzer, FakeNotifier


@pytest.fixture
def engine():
    engine = create_engine_from_url("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cipher():
    return TokenCipher(Fernet.generate_key().decode())


@pytest.fixture
def queue_config():
    return QueueConfig(max_retries=3, retry_base_delay=30)


@pytest.fixture
def retention():
    return RetentionConfig()


@pytest.fixture
def queue(db, queue_config):
    return EnrichmentQueue(db, queue_config)


@pytest.fixture
def tenant(db, cipher):
    tenant = Tenant(id=TENANT_ID, name="Acme Recruiting", is_active=True)
    db.add(tenant)
    db.add(
        ATSConnection(
            tenant_id=TENANT_ID,
            provider="jobadder",
            access_token=cipher.encrypt("access-1"),
            refresh_token=cipher.encrypt("refresh-1"),
            webhook_secret=cipher.encrypt(WEBHOOK_SECRET),
            expires_at=utc_now() + timedelta(hours=1),
            status="connected",
        )
    )
    db.commit()
    return tenant


@pytest.fixture
def make_candidate(db, tenant):
    counter = {"n": 0}

    def _make(consent: bool = True, resume_text: Optional[str] = "Senior engineer, ten years of Python.", **fields):
        counter["n"] += 1
        candidate = Candidate(
            tenant_id=tenant.id,
            external_id=fields.pop("external_id", f"c-{counter['n']}"),
            first_name=fields.pop("first_name", "Ada"),
            last_name=fields.pop("last_name", "Lovelace"),
            email=fields.pop("email", f"ada{counter['n']}@example.com"),
            data_usage_consent=consent,
            resume_text=resume_text,
            **fields,
        )
        db.add(candidate)
        db.commit()
        return candidate

    return _make


@pytest.fixture
def job(db, tenant):
    job = Job(
        tenant_id=tenant.id,
        external_id="j-1",
        title="Backend Engineer",
        location="Sydney, NSW",
        status="Open",
        is_active=True,
        raw={},
    )
    db.add(job)
    db.commit()
    return job


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def transient():
    return TransientExternalError("AI service unavailable", status_code=503, service="claude")
