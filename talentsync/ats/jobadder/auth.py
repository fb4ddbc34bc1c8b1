"""JobAdder OAuth2 token management."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional
from urllib.parse import urlencode

import httpx
import structlog
from sqlalchemy import select

from talentsync.config import JobAdderConfig
from talentsync.database import SessionFactory, session_scope
from talentsync.errors import AuthError, TransientExternalError
from talentsync.models import ATSConnection
from talentsync.services.encryption import TokenCipher
from talentsync.utils.time import utc_now

logger = structlog.get_logger()

OAUTH_SCOPES = "read write offline_access"


@dataclass
class TokenSet:
    access_token: str
    refresh_token: str
    expires_at: datetime


class TokenManager:
    """Owns OAuth access/refresh tokens per tenant.

    Tokens are cached in memory and persisted (encrypted) on the tenant's
    ATSConnection. Refreshes are single-flight per tenant: concurrent callers
    wait on the same lock and re-check the cache once they hold it.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        config: JobAdderConfig,
        cipher: TokenCipher,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.cipher = cipher
        self.http_client = http_client
        self._cache: Dict[str, TokenSet] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    def _is_fresh(self, tokens: Optional[TokenSet]) -> bool:
        if tokens is None:
            return False
        margin = timedelta(seconds=self.config.token_refresh_margin)
        return tokens.expires_at > utc_now() + margin

    async def get_access_token(self, tenant_id: str) -> str:
        """Get a valid access token, refreshing if necessary.

        Raises:
            AuthError: If the tenant has no usable connection or the refresh is rejected
            TransientExternalError: If the token endpoint is unreachable
        """
        tokens = self._cache.get(tenant_id)
        if self._is_fresh(tokens):
            return tokens.access_token

        async with self._lock_for(tenant_id):
            tokens = self._cache.get(tenant_id) or self._load(tenant_id)
            if self._is_fresh(tokens):
                self._cache[tenant_id] = tokens
                return tokens.access_token

            tokens = await self._refresh(tenant_id, tokens)
            return tokens.access_token

    def invalidate(self, tenant_id: str, access_token: Optional[str] = None) -> None:
        """Force the next call to refresh.

        With ``access_token`` given, only invalidate if that token is still the
        cached one, so several callers hitting the same 401 cause one refresh.
        """
        tokens = self._cache.get(tenant_id) or self._load(tenant_id)
        if access_token is not None and tokens.access_token != access_token:
            return
        self._cache[tenant_id] = TokenSet(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=datetime.min,
        )

    def _load(self, tenant_id: str) -> TokenSet:
        with session_scope(self.session_factory) as db:
            conn = self._get_connection(db, tenant_id)
            if conn is None or conn.status != "connected" or not conn.refresh_token:
                status = conn.status if conn else "missing"
                raise AuthError(tenant_id, "tenant_disconnected", f"connection {status}")
            return TokenSet(
                access_token=self.cipher.decrypt(conn.access_token) or "",
                refresh_token=self.cipher.decrypt(conn.refresh_token),
                expires_at=conn.expires_at or datetime.min,
            )

    @staticmethod
    def _get_connection(db, tenant_id: str) -> Optional[ATSConnection]:
        return db.execute(
            select(ATSConnection).where(ATSConnection.tenant_id == tenant_id)
        ).scalar_one_or_none()

    async def _post_token(self, data: dict) -> httpx.Response:
        payload = {
            **data,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        try:
            if self.http_client is not None:
                return await self.http_client.post(
                    self.config.token_url, data=payload, headers=headers, timeout=self.config.timeout
                )
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                return await client.post(self.config.token_url, data=payload, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientExternalError(f"Token endpoint unreachable: {e}", service="jobadder_oauth") from e

    async def _refresh(self, tenant_id: str, tokens: TokenSet) -> TokenSet:
        """Exchange the refresh token for a new access token."""
        logger.info("Refreshing JobAdder access token", tenant_id=tenant_id)

        response = await self._post_token(
            {"grant_type": "refresh_token", "refresh_token": tokens.refresh_token}
        )

        if response.status_code >= 500 or response.status_code == 429:
            logger.warning("JobAdder token endpoint unavailable", tenant_id=tenant_id, status_code=response.status_code)
            raise TransientExternalError(
                f"Token refresh failed: {response.status_code}",
                status_code=response.status_code,
                service="jobadder_oauth",
            )

        if response.status_code >= 400:
            logger.error(
                "JobAdder token refresh rejected",
                tenant_id=tenant_id,
                status_code=response.status_code,
                response=response.text[:500],
            )
            self.mark_broken(tenant_id, f"Token refresh rejected: {response.status_code}")
            raise AuthError(tenant_id, "tenant_disconnected", f"refresh rejected ({response.status_code})")

        new_tokens = self._parse_token_response(tenant_id, response, fallback_refresh=tokens.refresh_token)
        self._store(tenant_id, new_tokens)
        logger.info("JobAdder access token refreshed", tenant_id=tenant_id, expires_at=new_tokens.expires_at.isoformat())
        return new_tokens

    def _parse_token_response(
        self,
        tenant_id: str,
        response: httpx.Response,
        fallback_refresh: Optional[str] = None,
    ) -> TokenSet:
        try:
            data = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            self.mark_broken(tenant_id, "Token endpoint returned an unusable response")
            raise AuthError(tenant_id, "tenant_disconnected", "malformed token response") from e

        expires_in = int(data.get("expires_in", 3600))
        return TokenSet(
            access_token=access_token,
            # Update refresh token if a new one was provided
            refresh_token=data.get("refresh_token") or fallback_refresh,
            expires_at=utc_now() + timedelta(seconds=expires_in),
        )

    def _store(self, tenant_id: str, tokens: TokenSet) -> None:
        with session_scope(self.session_factory) as db:
            conn = self._get_connection(db, tenant_id)
            if conn is None:
                conn = ATSConnection(tenant_id=tenant_id, provider="jobadder")
                db.add(conn)
            conn.access_token = self.cipher.encrypt(tokens.access_token)
            conn.refresh_token = self.cipher.encrypt(tokens.refresh_token)
            conn.expires_at = tokens.expires_at
            conn.status = "connected"
            conn.last_error = None
            db.commit()
        self._cache[tenant_id] = tokens

    def mark_broken(self, tenant_id: str, error: str) -> None:
        """Flip the connection status flag so the admin layer can ask for re-authorization."""
        self._cache.pop(tenant_id, None)
        with session_scope(self.session_factory) as db:
            conn = self._get_connection(db, tenant_id)
            if conn is None:
                return
            conn.status = "broken"
            conn.last_error = error
            db.commit()
        logger.error("ATS connection marked broken", tenant_id=tenant_id, error=error)

    def authorization_url(self, tenant_id: str) -> str:
        """URL the tenant admin visits to grant access; state carries the tenant id."""
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.config.client_id,
                "redirect_uri": self.config.redirect_uri,
                "scope": OAUTH_SCOPES,
                "state": tenant_id,
            }
        )
        return f"{self.config.authorize_url}?{query}"

    async def exchange_code(self, tenant_id: str, code: str) -> None:
        """Complete the OAuth callback and mark the connection connected.

        Raises:
            AuthError: If the authorization code is rejected
            TransientExternalError: If the token endpoint is unreachable
        """
        response = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            }
        )
        if response.status_code >= 500:
            raise TransientExternalError(
                f"Code exchange failed: {response.status_code}",
                status_code=response.status_code,
                service="jobadder_oauth",
            )
        if response.status_code >= 400:
            logger.error("JobAdder code exchange rejected", tenant_id=tenant_id, status_code=response.status_code)
            raise AuthError(tenant_id, "authorization_failed", f"code exchange rejected ({response.status_code})")

        tokens = self._parse_token_response(tenant_id, response)
        if not tokens.refresh_token:
            raise AuthError(tenant_id, "authorization_failed", "no refresh token granted")
        self._store(tenant_id, tokens)
        logger.info("JobAdder connection established", tenant_id=tenant_id)
