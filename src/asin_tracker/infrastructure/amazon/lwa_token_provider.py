"""Login with Amazon access tokens for Selling Partner API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

from asin_tracker.domain.errors import EligibilityClientError

logger = logging.getLogger(__name__)

_DEFAULT_TOKEN_LIFETIME_SECONDS = 3600.0


class LwaTokenProvider:
    """Exchange the refresh token for access tokens and cache them in memory."""

    def __init__(
        self,
        *,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        refresh_margin_seconds: float = 60.0,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._refresh_margin_seconds = max(refresh_margin_seconds, 0.0)
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._clock = clock
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._refresh_lock = asyncio.Lock()

    async def get_access_token(self) -> str:
        """Return a cached token, refreshing it shortly before it expires."""

        token = self._valid_token()
        if token is not None:
            return token

        async with self._refresh_lock:
            token = self._valid_token()
            if token is not None:
                return token
            return await self._refresh()

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes it."""

        self._access_token = None
        self._expires_at = 0.0

    def _valid_token(self) -> str | None:
        if self._access_token is None:
            return None
        if self._clock() >= self._expires_at - self._refresh_margin_seconds:
            return None
        return self._access_token

    async def _refresh(self) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as http_client:
                response = await http_client.post(
                    self._token_url,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self._refresh_token,
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                )
        except httpx.HTTPError as exc:
            raise EligibilityClientError(f"LWA token request failed: {exc}") from exc

        if not response.is_success:
            raise EligibilityClientError(
                f"LWA token request failed: {response.status_code} {response.text.strip()}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise EligibilityClientError("LWA token response is not JSON.") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise EligibilityClientError("LWA token response has no access_token.")
        expires_in = payload.get("expires_in", _DEFAULT_TOKEN_LIFETIME_SECONDS)
        try:
            lifetime = float(expires_in)
        except (TypeError, ValueError):
            lifetime = _DEFAULT_TOKEN_LIFETIME_SECONDS

        self._access_token = access_token
        self._expires_at = self._clock() + lifetime
        logger.info("Refreshed LWA access token (expires in %ss).", int(lifetime))
        return access_token


__all__ = ["LwaTokenProvider"]
