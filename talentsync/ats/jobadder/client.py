"""JobAdder REST API client."""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog

from talentsync.ats.base import (
    ATSCandidate,
    ATSEducation,
    ATSExperience,
    ATSJob,
    ATSPage,
    ATSResume,
    ATSWebhook,
)
from talentsync.ats.jobadder.auth import TokenManager
from talentsync.ats.resilience import CircuitBreaker, backoff_delay, parse_retry_after
from talentsync.config import JobAdderConfig
from talentsync.errors import MalformedResponseError, PermanentExternalError, TransientExternalError

logger = structlog.get_logger()

WEBHOOK_EVENTS = [
    "job.created",
    "job.updated",
    "job.deleted",
    "candidate.created",
    "candidate.updated",
    "candidate.deleted",
]


class JobAdderClient:
    """Typed, rate-limited access to the JobAdder API.

    Per tenant: a semaphore caps in-flight calls (callers beyond the cap wait,
    up to ``acquire_timeout``) and a circuit breaker fails fast after repeated
    failures. 429, 5xx and timeouts are retried with jittered exponential
    backoff; once attempts run out a TransientExternalError is raised for the
    queue to retry later. Other 4xx responses are permanent.
    """

    def __init__(
        self,
        config: JobAdderConfig,
        tokens: TokenManager,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.tokens = tokens
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)
        self.sleep = sleep
        self.rng = rng or random.Random()
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}

    async def close(self) -> None:
        await self.http_client.aclose()

    def _semaphore(self, tenant_id: str) -> asyncio.Semaphore:
        sem = self._semaphores.get(tenant_id)
        if sem is None:
            sem = self._semaphores[tenant_id] = asyncio.Semaphore(self.config.max_concurrency)
        return sem

    def breaker(self, tenant_id: str) -> CircuitBreaker:
        breaker = self._breakers.get(tenant_id)
        if breaker is None:
            breaker = self._breakers[tenant_id] = CircuitBreaker(
                f"jobadder:{tenant_id}",
                threshold=self.config.circuit_threshold,
                cooldown=self.config.circuit_cooldown,
            )
        return breaker

    def circuit_states(self) -> Dict[str, str]:
        return {tenant_id: b.state for tenant_id, b in self._breakers.items()}

    async def _request(
        self,
        tenant_id: str,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        raw: bool = False,
    ) -> Any:
        """Make an API request with concurrency cap, retry and circuit breaking.

        Returns:
            Parsed JSON, or raw bytes when ``raw`` is set

        Raises:
            TransientExternalError: Retries exhausted, circuit open, or no free slot in time
            PermanentExternalError: 4xx other than 401/429, or malformed JSON
            AuthError: Token could not be obtained
        """
        sem = self._semaphore(tenant_id)
        try:
            await asyncio.wait_for(sem.acquire(), timeout=self.config.acquire_timeout)
        except asyncio.TimeoutError as e:
            raise TransientExternalError(
                f"No free JobAdder slot for tenant {tenant_id} within {self.config.acquire_timeout}s"
            ) from e

        try:
            return await self._request_with_retry(tenant_id, method, path, params, json, raw)
        finally:
            sem.release()

    async def _request_with_retry(
        self,
        tenant_id: str,
        method: str,
        path: str,
        params: Optional[dict],
        json: Optional[dict],
        raw: bool,
    ) -> Any:
        breaker = self.breaker(tenant_id)
        url = f"{self.config.api_url}{path}"
        reauthorized = False
        last_error = "unknown"
        attempt = 0

        while attempt < self.config.max_attempts:
            if not breaker.allow():
                raise TransientExternalError(f"Circuit open for tenant {tenant_id}")

            try:
                token = await self.tokens.get_access_token(tenant_id)
                retry_after = None
                try:
                    response = await self.http_client.request(
                        method,
                        url,
                        params={k: v for k, v in (params or {}).items() if v is not None},
                        json=json,
                        headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                        timeout=self.config.timeout,
                    )
                except (httpx.TimeoutException, httpx.TransportError) as e:
                    breaker.record_failure()
                    last_error = f"{type(e).__name__}: {e}"
                else:
                    status = response.status_code
                    if status == 401 and not reauthorized:
                        # Token revoked or expired early; refresh once and retry without counting
                        reauthorized = True
                        breaker.record_success()
                        self.tokens.invalidate(tenant_id, token)
                        logger.info("JobAdder returned 401, refreshing token", tenant_id=tenant_id, path=path)
                        continue
                    if status == 429 or status >= 500:
                        breaker.record_failure()
                        last_error = f"HTTP {status}"
                        if status == 429:
                            retry_after = parse_retry_after(response.headers.get("Retry-After"), self.config.backoff_cap)
                    elif status >= 400:
                        breaker.record_success()
                        logger.warning(
                            "JobAdder request rejected",
                            tenant_id=tenant_id,
                            method=method,
                            path=path,
                            status_code=status,
                        )
                        raise PermanentExternalError(
                            f"JobAdder {method} {path} failed: {status}",
                            status_code=status,
                            service="jobadder",
                        )
                    else:
                        breaker.record_success()
                        if raw:
                            return response.content
                        if status == 204 or not response.content:
                            return None
                        try:
                            return response.json()
                        except ValueError as e:
                            raise MalformedResponseError(
                                f"JobAdder {method} {path} returned invalid JSON", service="jobadder"
                            ) from e
            finally:
                breaker.release_trial()

            attempt += 1
            if attempt >= self.config.max_attempts:
                break
            delay = retry_after if retry_after is not None else backoff_delay(
                attempt - 1, self.config.backoff_base, self.config.backoff_cap, self.rng
            )
            logger.warning(
                "JobAdder request failed, will retry",
                tenant_id=tenant_id,
                path=path,
                attempt=attempt,
                delay=round(delay, 2),
                error=last_error,
            )
            await self.sleep(delay)

        logger.error("JobAdder request retries exhausted", tenant_id=tenant_id, path=path, error=last_error)
        raise TransientExternalError(f"JobAdder {method} {path} failed after {attempt} attempts: {last_error}")

    @staticmethod
    def _items(data: Any) -> List[dict]:
        """List endpoints return either a bare list or {"items": [...]}."""
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            return data["items"]
        raise MalformedResponseError("Expected a list response", service="jobadder")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def get_jobs(
        self, tenant_id: str, status: str = "active", limit: int = 100, offset: int = 0
    ) -> ATSPage[ATSJob]:
        """One page of jobs; unparseable items are reported in ``errors``."""
        data = await self._request(tenant_id, "GET", "/jobs", params={"status": status, "limit": limit, "offset": offset})
        page = ATSPage.parse(self._items(data), ATSJob.from_api)
        logger.info("Fetched jobs", tenant_id=tenant_id, count=len(page.records), malformed=len(page.errors))
        return page

    async def get_job(self, tenant_id: str, job_id: str) -> ATSJob:
        return ATSJob.from_api(await self._request(tenant_id, "GET", f"/jobs/{job_id}"))

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    async def get_candidates(
        self,
        tenant_id: str,
        status: str = "active",
        updated_since: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> ATSPage[ATSCandidate]:
        data = await self._request(
            tenant_id,
            "GET",
            "/candidates",
            params={"status": status, "updatedSince": updated_since, "limit": limit, "offset": offset},
        )
        page = ATSPage.parse(self._items(data), ATSCandidate.from_api)
        logger.info(
            "Fetched candidates",
            tenant_id=tenant_id,
            count=len(page.records),
            malformed=len(page.errors),
            offset=offset,
        )
        return page

    async def get_candidate(self, tenant_id: str, candidate_id: str) -> ATSCandidate:
        return ATSCandidate.from_api(await self._request(tenant_id, "GET", f"/candidates/{candidate_id}"))

    async def get_candidate_resume(self, tenant_id: str, candidate_id: str) -> Optional[ATSResume]:
        """Latest resume attachment with its file content, or None."""
        data = await self._request(
            tenant_id, "GET", f"/candidates/{candidate_id}/attachments", params={"type": "resume"}
        )
        attachments = self._items(data)
        if not attachments:
            return None

        resume = ATSResume.from_api(attachments[0])
        resume.content = await self._request(
            tenant_id,
            "GET",
            f"/candidates/{candidate_id}/attachments/{resume.external_id}/content",
            raw=True,
        )
        return resume

    async def get_candidate_experiences(self, tenant_id: str, candidate_id: str) -> List[ATSExperience]:
        data = await self._request(tenant_id, "GET", f"/candidates/{candidate_id}/experiences")
        return [ATSExperience.from_api(item) for item in self._items(data)]

    async def get_candidate_education(self, tenant_id: str, candidate_id: str) -> List[ATSEducation]:
        data = await self._request(tenant_id, "GET", f"/candidates/{candidate_id}/education")
        return [ATSEducation.from_api(item) for item in self._items(data)]

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def list_webhooks(self, tenant_id: str) -> List[ATSWebhook]:
        data = await self._request(tenant_id, "GET", "/webhooks")
        return [ATSWebhook.from_api(item) for item in self._items(data)]

    async def register_webhook(
        self,
        tenant_id: str,
        url: str,
        secret: str,
        events: Optional[List[str]] = None,
    ) -> ATSWebhook:
        """Create the tenant's webhook subscription, or update it if one already targets ``url``.

        Deliveries carry ``metadata.tenantId`` and are signed with ``secret``.
        """
        events = events or WEBHOOK_EVENTS
        body = {
            "url": url,
            "events": events,
            "status": "active",
            "secret": secret,
            "metadata": {"tenantId": tenant_id},
        }
        for hook in await self.list_webhooks(tenant_id):
            if hook.url == url:
                data = await self._request(tenant_id, "PUT", f"/webhooks/{hook.external_id}", json=body)
                logger.info("Webhook updated", tenant_id=tenant_id, webhook_id=hook.external_id)
                return ATSWebhook.from_api(data or {"id": hook.external_id, "url": url, "events": events})

        data = await self._request(tenant_id, "POST", "/webhooks", json=body)
        hook = ATSWebhook.from_api(data)
        logger.info("Webhook registered", tenant_id=tenant_id, webhook_id=hook.external_id)
        return hook
