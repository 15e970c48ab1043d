"""Selling Partner API client for FBA inbound eligibility checks."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from asin_tracker.domain.errors import EligibilityClientError
from asin_tracker.domain.ports import EligibilityClient
from asin_tracker.domain.products import SellerStatusValue
from asin_tracker.infrastructure.amazon.lwa_token_provider import LwaTokenProvider
from asin_tracker.infrastructure.amazon.request_signer import SigV4RequestSigner

logger = logging.getLogger(__name__)

ELIGIBILITY_PATH = "/fba/inbound/v0/eligibility/itemPreview"

_GATED_CODES = frozenset({"APPROVAL_REQUIRED", "GATED_BY_BRAND", "GATED_BY_CATEGORY"})
_INVOICE_CODES = frozenset({"REQUIRES_INVOICE", "INVOICE_REQUIRED"})
_RESTRICTED_CODES = frozenset({"NOT_ELIGIBLE", "INELIGIBLE"})
_RETRYABLE_STATUS_CODES = frozenset({429})


def _reason_codes(payload: Mapping[str, Any]) -> list[str]:
    codes: list[str] = []
    for reason in payload.get("reasons") or []:
        if isinstance(reason, Mapping) and isinstance(reason.get("reasonCode"), str):
            codes.append(reason["reasonCode"])
    for code in payload.get("ineligibilityReasonList") or []:
        if isinstance(code, str):
            codes.append(code)
    for restriction in payload.get("restrictions") or []:
        if isinstance(restriction, Mapping):
            codes.extend(_reason_codes({"reasons": restriction.get("reasons")}))
    return [code.strip().upper() for code in codes]


def map_eligibility_payload(payload: Mapping[str, Any]) -> SellerStatusValue:
    """Translate an eligibility response body into a seller status.

    Unknown or missing reason codes map to `unknown`; this never raises.
    """

    body = payload.get("payload", payload)
    if not isinstance(body, Mapping):
        return SellerStatusValue.UNKNOWN

    status = str(body.get("eligibilityStatus") or "").upper()
    if status == "ELIGIBLE" or body.get("isEligibleForProgram") is True:
        return SellerStatusValue.ALLOWED
    if "restrictions" in body and not body.get("restrictions") and not status:
        return SellerStatusValue.ALLOWED

    codes = set(_reason_codes(body))
    if status in _RESTRICTED_CODES and not codes:
        codes.add(status)
    if codes & _GATED_CODES:
        return SellerStatusValue.GATED
    if codes & _INVOICE_CODES:
        return SellerStatusValue.REQUIRES_INVOICE
    if codes & _RESTRICTED_CODES:
        return SellerStatusValue.RESTRICTED
    return SellerStatusValue.UNKNOWN


class SellingPartnerEligibilityClient(EligibilityClient):
    """Signed, token-authenticated eligibility lookups with retry and backoff."""

    def __init__(
        self,
        *,
        endpoint: str,
        marketplace_id: str,
        token_provider: LwaTokenProvider,
        signer: SigV4RequestSigner,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        initial_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._endpoint = self._normalize_endpoint(endpoint)
        self._marketplace_id = marketplace_id
        self._token_provider = token_provider
        self._signer = signer
        self._timeout_seconds = timeout_seconds
        self._max_attempts = max(max_attempts, 1)
        self._initial_backoff_seconds = max(initial_backoff_seconds, 0.0)
        self._max_backoff_seconds = max(max_backoff_seconds, self._initial_backoff_seconds)
        self._transport = transport
        self._sleep = sleep

    async def check_eligibility(self, asin: str) -> SellerStatusValue:
        """Return the classification for one ASIN.

        Rate limits, server errors, and transport errors are retried; any other
        failure, or running out of attempts, raises `EligibilityClientError`.
        """

        url = self._eligibility_url(asin)
        last_error = "no attempt made"
        for attempt in range(1, self._max_attempts + 1):
            delay = self._backoff_delay(attempt)
            try:
                response = await self._send(url)
            except httpx.HTTPError as exc:
                last_error = f"GET {url} failed: {exc}"
            else:
                if response.is_success:
                    return map_eligibility_payload(self._json_body(response))
                last_error = (
                    f"GET {url} failed: {response.status_code} {self._detail(response)}"
                )
                if response.status_code in {401, 403}:
                    self._token_provider.invalidate()
                if not self._is_retryable(response.status_code):
                    raise EligibilityClientError(last_error)
                delay = self._retry_after(response, default=delay)

            if attempt < self._max_attempts:
                logger.warning(
                    "Eligibility lookup for %s failed (attempt %s/%s), retrying in %.2fs: %s",
                    asin,
                    attempt,
                    self._max_attempts,
                    delay,
                    last_error,
                )
                await self._sleep(delay)

        raise EligibilityClientError(
            f"Eligibility lookup for {asin} failed after {self._max_attempts} attempts: "
            f"{last_error}"
        )

    async def _send(self, url: str) -> httpx.Response:
        access_token = await self._token_provider.get_access_token()
        headers = self._signer.sign(
            "GET",
            url,
            {
                "x-amz-access-token": access_token,
                "accept": "application/json",
            },
        )
        async with httpx.AsyncClient(
            timeout=self._timeout_seconds,
            transport=self._transport,
        ) as http_client:
            return await http_client.get(url, headers=headers)

    def _eligibility_url(self, asin: str) -> str:
        query = urlencode(
            {
                "asin": asin,
                "program": "INBOUND",
                "marketplaceIds": self._marketplace_id,
            }
        )
        return f"{self._endpoint}{ELIGIBILITY_PATH}?{query}"

    def _is_retryable(self, status_code: int) -> bool:
        return status_code in _RETRYABLE_STATUS_CODES or status_code >= 500

    def _backoff_delay(self, attempt: int) -> float:
        delay = self._initial_backoff_seconds * (2 ** max(attempt - 1, 0))
        return min(delay, self._max_backoff_seconds)

    def _retry_after(self, response: httpx.Response, *, default: float) -> float:
        """Return the server-requested delay, never longer than the backoff ceiling."""

        delay = self._parse_retry_after(response.headers.get("retry-after"))
        if delay is None:
            return default
        return min(delay, self._max_backoff_seconds)

    def _parse_retry_after(self, header: str | None) -> float | None:
        if not header:
            return None
        try:
            seconds = float(header)
        except ValueError:
            pass
        else:
            return max(seconds, 0.0) if math.isfinite(seconds) else None
        try:
            retry_at = parsedate_to_datetime(header)
        except (TypeError, ValueError):
            return None
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=UTC)
        return max((retry_at - datetime.now(UTC)).total_seconds(), 0.0)

    def _json_body(self, response: httpx.Response) -> Mapping[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise EligibilityClientError("Eligibility response is not JSON.") from exc
        if not isinstance(payload, Mapping):
            raise EligibilityClientError("Eligibility response is not a JSON object.")
        return payload

    def _detail(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            text = response.text.strip()
            return text or "<no response body>"

        if isinstance(payload, dict):
            errors = payload.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                message = errors[0].get("message")
                if isinstance(message, str):
                    return message
        return str(payload)

    def _normalize_endpoint(self, endpoint: str) -> str:
        normalized = endpoint.strip().rstrip("/")
        if not normalized:
            raise ValueError("SP-API endpoint cannot be empty.")
        return normalized


class UnconfiguredEligibilityClient(EligibilityClient):
    """Stand-in used when SP-API credentials are missing; every lookup fails."""

    async def check_eligibility(self, asin: str) -> SellerStatusValue:
        raise EligibilityClientError(
            f"Eligibility lookup for {asin} skipped: SP-API credentials are not configured."
        )


__all__ = [
    "ELIGIBILITY_PATH",
    "SellingPartnerEligibilityClient",
    "UnconfiguredEligibilityClient",
    "map_eligibility_payload",
]
