"""
Infrastructure layer: access token acquisition for the imagery service.

Tokens come from an OAuth client-credentials exchange. Several token endpoints
can be configured; they are tried in order until one returns a token.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from bloomwatch.config import settings
from bloomwatch.domain.exceptions import AuthenticationError, ConfigurationError
from bloomwatch.infrastructure.api_constants import APIConstants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the monotonic deadline after which it is discarded."""
    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenBroker:
    """
    Acquires and caches a bearer token.

    The cached token is returned until its deadline passes. Concurrent callers
    arriving while a fetch is in flight await that same fetch.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        endpoints: Optional[list[str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the broker.

        Args:
            client_id: OAuth client id (defaults to settings)
            client_secret: OAuth client secret (defaults to settings)
            endpoints: Token endpoint URLs, tried in order (defaults to settings)
            client: HTTP client to use; one is created when omitted
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.client_id = client_id if client_id is not None else settings.sentinel_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.sentinel_client_secret
        )
        self.endpoints = list(endpoints if endpoints is not None else settings.token_endpoints)
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout)
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._pending: Optional[asyncio.Task] = None

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    @property
    def cached_token(self) -> Optional[AccessToken]:
        """The cached token if it is still valid."""
        if self._token is not None and self._token.is_valid(self._clock()):
            return self._token
        return None

    def invalidate(self):
        """Drop the cached token so the next call fetches a new one."""
        self._token = None

    async def acquire(self) -> str:
        """
        Return a valid access token, fetching one if needed.

        Returns:
            Bearer token value

        Raises:
            ConfigurationError: If client credentials are not configured
            AuthenticationError: If every token endpoint failed
        """
        cached = self.cached_token
        if cached is not None:
            return cached.value

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._refresh())
            self._pending.add_done_callback(self._clear_pending)
        token = await asyncio.shield(self._pending)
        return token.value

    get_auth_token = acquire

    def _clear_pending(self, task: asyncio.Task):
        if self._pending is task:
            self._pending = None

    async def _refresh(self) -> AccessToken:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "Imagery service credentials are missing "
                "(set SENTINEL_CLIENT_ID and SENTINEL_CLIENT_SECRET)"
            )
        if not self.endpoints:
            raise ConfigurationError("No token endpoints configured")

        last_error = "no endpoint attempted"
        for url in self.endpoints:
            try:
                token = await self._request_token(url)
            except _SoftFailure as e:
                logger.warning(f"Token endpoint {url} failed: {e}")
                last_error = str(e)
                continue

            self._token = token
            logger.info(
                f"Access token obtained from {url}, "
                f"cached for {token.expires_at - self._clock():.0f}s"
            )
            return token

        raise AuthenticationError(
            f"Could not obtain an access token from any endpoint. Last error: {last_error}"
        )

    async def _request_token(self, url: str) -> AccessToken:
        try:
            response = await self.client.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={
                    "Content-Type": APIConstants.CONTENT_TYPE_FORM,
                    "Accept": APIConstants.CONTENT_TYPE_JSON,
                },
            )
        except httpx.RequestError as e:
            raise _SoftFailure(f"request error: {e}") from e

        if not response.is_success:
            raise _SoftFailure(f"HTTP {response.status_code}: {response.text}")

        try:
            payload = response.json()
        except ValueError as e:
            raise _SoftFailure("response is not valid JSON") from e

        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not value or not isinstance(value, str):
            raise _SoftFailure("response has no access_token")

        return AccessToken(
            value=value,
            expires_at=self._clock() + self._cache_seconds(payload.get("expires_in")),
        )

    def _cache_seconds(self, expires_in) -> float:
        try:
            server_ttl = float(expires_in)
        except (TypeError, ValueError):
            server_ttl = None
        # Zero, negative and infinite lifetimes count as missing
        if server_ttl is None or not math.isfinite(server_ttl) or server_ttl <= 0:
            server_ttl = float(settings.token_default_ttl)
        return max(float(settings.token_min_ttl), server_ttl - settings.token_safety_margin)


class _SoftFailure(Exception):
    """An endpoint did not produce a token; the next one is tried."""


# Singleton instance
_token_broker: Optional[TokenBroker] = None


def get_token_broker() -> TokenBroker:
    """
    Get or create the singleton token broker.

    Returns:
        TokenBroker instance
    """
    global _token_broker
    if _token_broker is None:
        _token_broker = TokenBroker()
    return _token_broker
