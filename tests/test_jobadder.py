"""
Tests for the JobAdder token manager and REST client.
"""

import asyncio
import dataclasses
import json
from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest
from sqlalchemy import select

from talentsync.ats.jobadder.auth import TokenManager
from talentsync.ats.jobadder.client import WEBHOOK_EVENTS, JobAdderClient
from talentsync.ats.resilience import CircuitBreaker
from talentsync.config import JobAdderConfig
from talentsync.errors import AuthError, MalformedResponseError, PermanentExternalError, TransientExternalError
from talentsync.models import ATSConnection
from talentsync.utils.time import utc_now

from tests.helpers import TENANT_ID

TOKEN_URL = "https://id.jobadder.com/connect/token"
API = "https://api.jobadder.com/v2"


class FakeJobAdder:
    """Routes requests to canned responses; the last response for a route repeats."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, url, *responses):
        self.routes[(method, url)] = list(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, endpoint(request))
        responses = self.routes.get(key)
        if not responses:
            return httpx.Response(404, json={"message": "no route"})
        canned = responses.pop(0) if len(responses) > 1 else responses[0]
        return httpx.Response(canned.status_code, headers=canned.headers, content=canned.content)

    def calls(self, method, url):
        return [r for r in self.requests if r.method == method and endpoint(r) == url]


def endpoint(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


def token_response(access="access-2", refresh="refresh-2", expires_in=3600):
    return httpx.Response(200, json={"access_token": access, "refresh_token": refresh, "expires_in": expires_in})


@pytest.fixture
def fake():
    return FakeJobAdder()


@pytest.fixture
def config():
    return JobAdderConfig(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="https://app.example.com/api/v1/oauth/jobadder/callback",
        max_attempts=3,
        circuit_threshold=5,
        acquire_timeout=0.05,
    )


@pytest.fixture
async def http_client(fake):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)) as client:
        yield client


@pytest.fixture
def tokens(session_factory, config, cipher, http_client, tenant):
    return TokenManager(session_factory, config, cipher, http_client=http_client)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(config, tokens, http_client, sleeps):
    async def record_sleep(seconds):
        sleeps.append(seconds)

    return JobAdderClient(config, tokens, http_client=http_client, sleep=record_sleep)


def connection(db) -> ATSConnection:
    db.expire_all()
    return db.execute(select(ATSConnection).where(ATSConnection.tenant_id == TENANT_ID)).scalar_one()


def expire_tokens(db):
    conn = connection(db)
    conn.expires_at = utc_now() - timedelta(minutes=1)
    db.commit()


class TestTokenManager:
    async def test_fresh_stored_token_used_without_refresh(self, tokens, fake):
        assert await tokens.get_access_token(TENANT_ID) == "access-1"
        assert fake.requests == []

    async def test_expired_token_refreshed_and_persisted(self, db, tokens, fake, cipher):
        expire_tokens(db)
        fake.on("POST", TOKEN_URL, token_response())

        assert await tokens.get_access_token(TENANT_ID) == "access-2"

        form = parse_qs(fake.requests[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]
        conn = connection(db)
        assert cipher.decrypt(conn.access_token) == "access-2"
        assert cipher.decrypt(conn.refresh_token) == "refresh-2"
        assert conn.access_token != "access-2"

    async def test_token_near_expiry_is_refreshed(self, db, tokens, fake):
        conn = connection(db)
        conn.expires_at = utc_now() + timedelta(seconds=60)
        db.commit()
        fake.on("POST", TOKEN_URL, token_response())

        assert await tokens.get_access_token(TENANT_ID) == "access-2"

    async def test_concurrent_callers_share_one_refresh(self, db, tokens, fake):
        expire_tokens(db)
        fake.on("POST", TOKEN_URL, token_response())

        results = await asyncio.gather(*(tokens.get_access_token(TENANT_ID) for _ in range(5)))

        assert set(results) == {"access-2"}
        assert len(fake.calls("POST", TOKEN_URL)) == 1

    async def test_rejected_refresh_marks_connection_broken(self, db, tokens, fake):
        expire_tokens(db)
        fake.on("POST", TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(AuthError) as exc_info:
            await tokens.get_access_token(TENANT_ID)

        assert exc_info.value.reason == "tenant_disconnected"
        assert connection(db).status == "broken"

    async def test_broken_connection_refuses_tokens(self, db, tokens, fake):
        conn = connection(db)
        conn.status = "broken"
        db.commit()

        with pytest.raises(AuthError):
            await tokens.get_access_token(TENANT_ID)
        assert fake.requests == []

    async def test_token_endpoint_outage_is_transient(self, db, tokens, fake):
        expire_tokens(db)
        fake.on("POST", TOKEN_URL, httpx.Response(503))

        with pytest.raises(TransientExternalError):
            await tokens.get_access_token(TENANT_ID)
        assert connection(db).status == "connected"

    def test_authorization_url_carries_tenant_state(self, tokens):
        url = tokens.authorization_url(TENANT_ID)
        assert url.startswith("https://id.jobadder.com/connect/authorize?")
        assert "state=tenant-1" in url
        assert "offline_access" in url

    async def test_exchange_code_connects_tenant(self, db, tokens, fake, cipher):
        conn = connection(db)
        conn.status = "disconnected"
        db.commit()
        fake.on("POST", TOKEN_URL, token_response(access="access-new", refresh="refresh-new"))

        await tokens.exchange_code(TENANT_ID, "auth-code")

        form = parse_qs(fake.requests[0].content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        conn = connection(db)
        assert conn.status == "connected"
        assert cipher.decrypt(conn.refresh_token) == "refresh-new"

    async def test_rejected_code_exchange(self, tokens, fake):
        fake.on("POST", TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(AuthError) as exc_info:
            await tokens.exchange_code(TENANT_ID, "bad-code")
        assert exc_info.value.reason == "authorization_failed"


class TestClientRequests:
    async def test_get_jobs_maps_records(self, client, fake):
        fake.on(
            "GET",
            f"{API}/jobs",
            httpx.Response(
                200,
                json={"items": [{"id": 7, "title": "Data Engineer", "location": {"city": "Sydney", "state": "NSW"}}]},
            ),
        )

        page = await client.get_jobs(TENANT_ID)

        assert page.errors == []
        assert page.records[0].external_id == "7"
        assert page.records[0].location == "Sydney, NSW"
        assert fake.requests[0].headers["Authorization"] == "Bearer access-1"

    async def test_candidate_consent_read_from_custom_fields(self, client, fake):
        fake.on(
            "GET",
            f"{API}/candidates/42",
            httpx.Response(200, json={"id": 42, "firstName": "Grace", "customFields": {"dataUsageConsent": True}}),
        )
        candidate = await client.get_candidate(TENANT_ID, "42")
        assert candidate.data_usage_consent is True

    async def test_malformed_record_is_permanent(self, client, fake):
        fake.on("GET", f"{API}/jobs/7", httpx.Response(200, json={"id": 7}))
        with pytest.raises(MalformedResponseError):
            await client.get_job(TENANT_ID, "7")

    async def test_rate_limit_honours_retry_after(self, client, fake, sleeps):
        fake.on(
            "GET",
            f"{API}/jobs/7",
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json={"id": 7, "title": "Data Engineer"}),
        )

        job = await client.get_job(TENANT_ID, "7")

        assert job.title == "Data Engineer"
        assert sleeps == [2.0]

    async def test_server_errors_exhaust_into_transient(self, client, fake, sleeps, config):
        fake.on("GET", f"{API}/jobs/7", httpx.Response(502))

        with pytest.raises(TransientExternalError):
            await client.get_job(TENANT_ID, "7")

        assert len(fake.calls("GET", f"{API}/jobs/7")) == config.max_attempts
        assert len(sleeps) == config.max_attempts - 1
        assert all(0 <= s <= config.backoff_cap for s in sleeps)

    async def test_client_error_is_permanent_and_not_retried(self, client, fake):
        fake.on("GET", f"{API}/jobs/7", httpx.Response(404))

        with pytest.raises(PermanentExternalError) as exc_info:
            await client.get_job(TENANT_ID, "7")

        assert exc_info.value.status_code == 404
        assert len(fake.calls("GET", f"{API}/jobs/7")) == 1

    async def test_unauthorized_refreshes_once_and_retries(self, client, fake):
        fake.on("POST", TOKEN_URL, token_response())
        fake.on(
            "GET",
            f"{API}/jobs/7",
            httpx.Response(401),
            httpx.Response(200, json={"id": 7, "title": "Data Engineer"}),
        )

        await client.get_job(TENANT_ID, "7")

        api_calls = fake.calls("GET", f"{API}/jobs/7")
        assert [r.headers["Authorization"] for r in api_calls] == ["Bearer access-1", "Bearer access-2"]
        assert len(fake.calls("POST", TOKEN_URL)) == 1

    async def test_second_unauthorized_is_permanent(self, client, fake):
        fake.on("POST", TOKEN_URL, token_response())
        fake.on("GET", f"{API}/jobs/7", httpx.Response(401))

        with pytest.raises(PermanentExternalError):
            await client.get_job(TENANT_ID, "7")

    async def test_network_error_is_retried(self, config, tokens, sleeps):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"id": 7, "title": "Data Engineer"})

        async def record_sleep(seconds):
            sleeps.append(seconds)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = JobAdderClient(config, tokens, http_client=http, sleep=record_sleep)
            job = await client.get_job(TENANT_ID, "7")

        assert job.external_id == "7"
        assert len(attempts) == 2


class TestClientProtection:
    async def test_circuit_opens_after_consecutive_failures(self, config, tokens, http_client, fake):
        fake.on("GET", f"{API}/jobs/7", httpx.Response(500))

        async def no_sleep(_):
            return None

        strict = dataclasses.replace(config, max_attempts=2, circuit_threshold=2)
        client = JobAdderClient(strict, tokens, http_client=http_client, sleep=no_sleep)

        with pytest.raises(TransientExternalError):
            await client.get_job(TENANT_ID, "7")
        assert client.circuit_states() == {TENANT_ID: "open"}

        with pytest.raises(TransientExternalError, match="Circuit open"):
            await client.get_job(TENANT_ID, "7")
        assert len(fake.calls("GET", f"{API}/jobs/7")) == 2

    async def test_token_failure_during_half_open_trial_does_not_wedge_circuit(self, db, client, fake):
        now = [0.0]
        breaker = client.breaker(TENANT_ID)
        breaker.clock = lambda: now[0]
        for _ in range(client.config.circuit_threshold):
            breaker.record_failure()
        now[0] += client.config.circuit_cooldown + 1
        expire_tokens(db)
        fake.on("POST", TOKEN_URL, httpx.Response(503), token_response())
        fake.on("GET", f"{API}/jobs/7", httpx.Response(200, json={"id": 7, "title": "Data Engineer"}))

        with pytest.raises(TransientExternalError):
            await client.get_job(TENANT_ID, "7")
        assert breaker.state == "half_open"
        assert fake.calls("GET", f"{API}/jobs/7") == []

        job = await client.get_job(TENANT_ID, "7")

        assert job.external_id == "7"
        assert breaker.state == "closed"

    def test_released_trial_lets_next_call_through(self):
        now = [0.0]
        breaker = CircuitBreaker("jobadder:test", threshold=1, cooldown=10, clock=lambda: now[0])
        breaker.record_failure()
        now[0] = 11

        assert breaker.allow() is True
        assert breaker.allow() is False
        breaker.release_trial()
        assert breaker.state == "half_open"
        assert breaker.allow() is True

    async def test_waiting_for_a_slot_times_out_as_transient(self, client):
        semaphore = client._semaphore(TENANT_ID)
        for _ in range(client.config.max_concurrency):
            await semaphore.acquire()

        with pytest.raises(TransientExternalError, match="No free JobAdder slot"):
            await client.get_job(TENANT_ID, "7")


class TestWebhookRegistration:
    async def test_registers_new_subscription(self, client, fake):
        fake.on("GET", f"{API}/webhooks", httpx.Response(200, json={"items": []}))
        fake.on(
            "POST",
            f"{API}/webhooks",
            httpx.Response(201, json={"id": "wh-1", "url": "https://app.example.com/hook", "events": WEBHOOK_EVENTS}),
        )

        hook = await client.register_webhook(TENANT_ID, "https://app.example.com/hook", "s3cret")

        body = json.loads(fake.calls("POST", f"{API}/webhooks")[0].content)
        assert hook.external_id == "wh-1"
        assert body["secret"] == "s3cret"
        assert body["metadata"] == {"tenantId": TENANT_ID}
        assert body["events"] == WEBHOOK_EVENTS

    async def test_existing_subscription_is_updated(self, client, fake):
        fake.on(
            "GET",
            f"{API}/webhooks",
            httpx.Response(200, json=[{"id": "wh-9", "url": "https://app.example.com/hook"}]),
        )
        fake.on("PUT", f"{API}/webhooks/wh-9", httpx.Response(204))

        hook = await client.register_webhook(TENANT_ID, "https://app.example.com/hook", "s3cret")

        assert hook.external_id == "wh-9"
        assert fake.calls("POST", f"{API}/webhooks") == []
