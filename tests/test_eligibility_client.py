from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from asin_tracker.domain.errors import EligibilityClientError
from asin_tracker.domain.products import SellerStatusValue
from asin_tracker.infrastructure.amazon import (
    LwaTokenProvider,
    SellingPartnerEligibilityClient,
    SigV4RequestSigner,
    UnconfiguredEligibilityClient,
)
from asin_tracker.infrastructure.amazon.eligibility_client import (
    ELIGIBILITY_PATH,
    map_eligibility_payload,
)

ENDPOINT = "https://sellingpartnerapi-na.amazon.com"
TOKEN_URL = "https://api.amazon.com/auth/o2/token"


def _ineligible(*codes: str) -> dict[str, Any]:
    return {"payload": {"isEligibleForProgram": False, "ineligibilityReasonList": list(codes)}}


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _token_handler(token_requests: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        token_requests.append(request)
        return httpx.Response(
            200,
            json={"access_token": f"token-{len(token_requests)}", "expires_in": 3600},
        )

    return handler


def _client(
    api_handler,
    *,
    token_requests: list[httpx.Request] | None = None,
    sleep: RecordingSleep | None = None,
    clock: FakeClock | None = None,
    max_attempts: int = 3,
) -> SellingPartnerEligibilityClient:
    token_provider = LwaTokenProvider(
        token_url=TOKEN_URL,
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        transport=httpx.MockTransport(
            _token_handler(token_requests if token_requests is not None else [])
        ),
        clock=clock or FakeClock(),
    )
    signer = SigV4RequestSigner(
        access_key_id="AKIDEXAMPLE",
        secret_access_key="secret",
        region="us-east-1",
    )
    return SellingPartnerEligibilityClient(
        endpoint=f"{ENDPOINT}/",
        marketplace_id="ATVPDKIKX0DER",
        token_provider=token_provider,
        signer=signer,
        max_attempts=max_attempts,
        initial_backoff_seconds=1.0,
        max_backoff_seconds=30.0,
        transport=httpx.MockTransport(api_handler),
        sleep=sleep or RecordingSleep(),
    )


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"payload": {"isEligibleForProgram": True}}, SellerStatusValue.ALLOWED),
        ({"payload": {"eligibilityStatus": "ELIGIBLE"}}, SellerStatusValue.ALLOWED),
        ({"restrictions": []}, SellerStatusValue.ALLOWED),
        (
            _ineligible("APPROVAL_REQUIRED"),
            SellerStatusValue.GATED,
        ),
        (
            {"restrictions": [{"reasons": [{"reasonCode": "GATED_BY_CATEGORY"}]}]},
            SellerStatusValue.GATED,
        ),
        (
            {"eligibilityStatus": "INELIGIBLE", "reasons": [{"reasonCode": "REQUIRES_INVOICE"}]},
            SellerStatusValue.REQUIRES_INVOICE,
        ),
        (
            {"ineligibilityReasonList": ["REQUIRES_INVOICE", "GATED_BY_BRAND"]},
            SellerStatusValue.GATED,
        ),
        (
            {"ineligibilityReasonList": ["NOT_ELIGIBLE", "INVOICE_REQUIRED"]},
            SellerStatusValue.REQUIRES_INVOICE,
        ),
        ({"eligibilityStatus": "NOT_ELIGIBLE"}, SellerStatusValue.RESTRICTED),
        (
            _ineligible("FBA_INB_0004"),
            SellerStatusValue.UNKNOWN,
        ),
        ({"payload": "unexpected"}, SellerStatusValue.UNKNOWN),
        ({}, SellerStatusValue.UNKNOWN),
    ],
)
def test_map_eligibility_payload(payload: dict[str, Any], expected: SellerStatusValue) -> None:
    assert map_eligibility_payload(payload) is expected


def test_lookup_sends_signed_request_with_access_token() -> None:
    requests: list[httpx.Request] = []
    token_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"payload": {"isEligibleForProgram": True}})

    client = _client(handler, token_requests=token_requests)

    async def scenario() -> list[SellerStatusValue]:
        return [
            await client.check_eligibility("B000000001"),
            await client.check_eligibility("B000000002"),
        ]

    outcomes = asyncio.run(scenario())

    assert outcomes == [SellerStatusValue.ALLOWED, SellerStatusValue.ALLOWED]
    assert len(token_requests) == 1
    assert b"grant_type=refresh_token" in token_requests[0].content
    assert len(requests) == 2
    request = requests[0]
    assert request.url.path == ELIGIBILITY_PATH
    assert request.url.params["asin"] == "B000000001"
    assert request.url.params["program"] == "INBOUND"
    assert request.url.params["marketplaceIds"] == "ATVPDKIKX0DER"
    assert request.headers["x-amz-access-token"] == "token-1"
    assert request.headers["authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")
    assert "x-amz-date" in request.headers


def test_token_is_refreshed_before_it_expires() -> None:
    token_requests: list[httpx.Request] = []
    clock = FakeClock()

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"payload": {"isEligibleForProgram": True}})

    client = _client(handler, token_requests=token_requests, clock=clock)

    async def scenario() -> None:
        await client.check_eligibility("B000000001")
        clock.now = 3600 - 30
        await client.check_eligibility("B000000001")

    asyncio.run(scenario())

    assert len(token_requests) == 2


def test_rate_limit_honours_retry_after() -> None:
    sleep = RecordingSleep()
    responses = iter(
        [
            httpx.Response(
                429,
                headers={"Retry-After": "7"},
                json={"errors": [{"message": "Too many requests"}]},
            ),
            httpx.Response(200, json=_ineligible("APPROVAL_REQUIRED")),
        ]
    )

    def handler(_: httpx.Request) -> httpx.Response:
        return next(responses)

    client = _client(handler, sleep=sleep)

    assert asyncio.run(client.check_eligibility("B000000001")) is SellerStatusValue.GATED
    assert sleep.calls == [7.0]


def test_server_errors_retry_with_backoff_until_exhausted() -> None:
    sleep = RecordingSleep()
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(503, text="unavailable")

    client = _client(handler, sleep=sleep, max_attempts=3)

    with pytest.raises(EligibilityClientError, match="after 3 attempts"):
        asyncio.run(client.check_eligibility("B000000001"))

    assert len(requests) == 3
    assert sleep.calls == [1.0, 2.0]


def test_transport_errors_are_retried() -> None:
    sleep = RecordingSleep()
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"payload": {"eligibilityStatus": "ELIGIBLE"}})

    client = _client(handler, sleep=sleep)

    assert asyncio.run(client.check_eligibility("B000000001")) is SellerStatusValue.ALLOWED
    assert attempts == 2
    assert sleep.calls == [1.0]


def test_client_errors_fail_without_retry() -> None:
    sleep = RecordingSleep()
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(400, json={"errors": [{"message": "Invalid ASIN"}]})

    client = _client(handler, sleep=sleep)

    with pytest.raises(EligibilityClientError, match="Invalid ASIN"):
        asyncio.run(client.check_eligibility("B000000001"))

    assert len(requests) == 1
    assert sleep.calls == []


def test_unauthorized_response_drops_cached_token() -> None:
    token_requests: list[httpx.Request] = []

    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"errors": [{"message": "Access denied"}]})

    client = _client(handler, token_requests=token_requests)

    async def scenario() -> None:
        with pytest.raises(EligibilityClientError):
            await client.check_eligibility("B000000001")
        with pytest.raises(EligibilityClientError):
            await client.check_eligibility("B000000001")

    asyncio.run(scenario())

    assert len(token_requests) == 2


def test_token_endpoint_failure_raises_client_error() -> None:
    provider = LwaTokenProvider(
        token_url=TOKEN_URL,
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        transport=httpx.MockTransport(lambda _: httpx.Response(401, text="invalid_client")),
    )

    with pytest.raises(EligibilityClientError, match="invalid_client"):
        asyncio.run(provider.get_access_token())


def test_unconfigured_client_always_fails() -> None:
    with pytest.raises(EligibilityClientError, match="not configured"):
        asyncio.run(UnconfiguredEligibilityClient().check_eligibility("B000000001"))


def test_retry_after_is_capped_at_the_backoff_ceiling() -> None:
    sleep = RecordingSleep()
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "86400"}),
            httpx.Response(503, headers={"Retry-After": "inf"}),
            httpx.Response(200, json={"payload": {"isEligibleForProgram": True}}),
        ]
    )

    def handler(_: httpx.Request) -> httpx.Response:
        return next(responses)

    client = _client(handler, sleep=sleep)

    assert asyncio.run(client.check_eligibility("B000000001")) is SellerStatusValue.ALLOWED
    assert sleep.calls == [30.0, 2.0]
