"""
Token Provider

Caches the bearer token obtained through the exchange's OAuth2
client-credentials grant and refreshes it on expiry.

Valid tokens are returned without I/O or locking. Refreshes are serialized
by a single lock with a re-check after acquiring it, so however many callers
find the cache stale, only one exchange request is in flight and every
waiter receives its token.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from ..core.config import Settings
from ..core.errors import TokenAcquisitionError

logger = logging.getLogger(__name__)

GRANT_TYPE = "client_credentials"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return bool(self.value) and now < self.expires_at


class TokenProvider:
    """Process-local token cache, constructed once at startup and injected."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.auth_url = settings.exchange.auth_url
        self.client_id = settings.exchange.client_id
        self.client_secret = settings.exchange.client_secret
        self.margin = timedelta(seconds=settings.exchange.token_expiry_margin_seconds)
        self.client = http_client or httpx.AsyncClient(timeout=settings.exchange.timeout_seconds)
        self._clock = clock
        self._cached: Optional[CachedToken] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[CachedToken]:
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    async def close(self) -> None:
        await self.client.aclose()

    async def get_token(self) -> str:
        # Fast path: no await between the check and the return
        cached = self._cached
        if cached is not None and cached.is_valid(self._clock()):
            return cached.value

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            cached = self._cached
            if cached is not None and cached.is_valid(self._clock()):
                return cached.value

            token = await self._exchange()
            self._cached = token
            return token.value

    async def _exchange(self) -> CachedToken:
        if not self.auth_url:
            raise TokenAcquisitionError("exchange auth_url not configured")

        url = f"{self.auth_url}/accesstoken"
        data = {"client_id": self.client_id or "", "client_secret": self.client_secret or ""}

        try:
            response = await self.client.post(url, params={"grant_type": GRANT_TYPE}, data=data)
        except httpx.HTTPError as e:
            logger.error("token_request_error", extra={"error": str(e)})
            raise TokenAcquisitionError(f"token request failed: {e}") from e

        if response.status_code != 200:
            logger.error("token_http_error", extra={"status_code": response.status_code})
            raise TokenAcquisitionError(
                f"token error {response.status_code}: {response.text}",
                details={"status_code": response.status_code},
            )

        try:
            body = response.json()
            access_token = body["access_token"]
            expires_in = int(body["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            logger.error("token_parse_error", extra={"error": str(e)})
            raise TokenAcquisitionError(f"parse token response: {e}") from e

        if not isinstance(access_token, str) or not access_token:
            raise TokenAcquisitionError("parse token response: empty access_token")

        expires_at = self._clock() + timedelta(seconds=expires_in) - self.margin
        logger.info("token_refreshed", extra={"expires_in": expires_in})
        return CachedToken(value=access_token, expires_at=expires_at)
