from __future__ import annotations

import asyncio
import itertools
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest
from conftest import MERCHANT_ADDRESS

from railpay.payments.enums import PaymentStatus, Rail, RailErrorKind
from railpay.payments.fallback import DemoFallbackPolicy
from railpay.payments.models import (
    Money,
    PaymentIntent,
    PaymentIntentRequest,
    RailResult,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@dataclass(slots=True)
class StubRailClient:
    """Rail client stub that returns or raises after an optional delay."""

    rail: Rail
    result: RailResult[PaymentIntent] | None = None
    configured: bool = True
    delay: float = 0.0
    error: Exception | None = None
    calls: int = 0

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def create_intent(
        self, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


def _request() -> PaymentIntentRequest:
    return PaymentIntentRequest(
        amount=Money(amount=Decimal("59"), currency="USD"),
        name="Premium Membership",
        destination_address=MERCHANT_ADDRESS,
        destination_asset="USDC",
        destination_network="base",
    )


def _policy(
    *, timeout: float = 1.0, ticks: Iterator[int] | None = None
) -> DemoFallbackPolicy:
    clock_ticks = ticks if ticks is not None else iter(range(1_000, 10_000))
    return DemoFallbackPolicy(
        frontend_url="https://shop.example/",
        intent_ttl=timedelta(hours=1),
        timeout_seconds=timeout,
        monotonic_ns=lambda: next(clock_ticks),
        clock=lambda: FIXED_NOW,
    )


def _live_intent() -> PaymentIntent:
    return PaymentIntent(
        intent_id="chg_live",
        rail=Rail.HOSTED_CHARGE,
        amount=Money(amount=Decimal("59"), currency="USD"),
        destination_asset="USDC",
        destination_network="base",
        destination_address=MERCHANT_ADDRESS,
        created_at=FIXED_NOW,
        expires_at=FIXED_NOW + timedelta(hours=1),
        payment_url="https://commerce.coinbase.com/pay/LIVE",
    )


@pytest.mark.asyncio
async def test_missing_credentials_yield_demo_intent_without_calling_rail() -> None:
    client = StubRailClient(rail=Rail.HOSTED_CHARGE, configured=False)

    intent = await _policy().obtain_intent(client, _request())

    assert client.calls == 0
    assert intent.is_demo is True
    assert intent.status is PaymentStatus.CREATED
    assert intent.intent_id == "demo_charge_1000"
    assert intent.demo_reason == "not_configured"
    assert intent.rail_error is None
    assert intent.created_at == FIXED_NOW
    assert intent.expires_at == FIXED_NOW + timedelta(hours=1)
    parts = urlsplit(intent.payment_url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://shop.example/success"
    assert parse_qs(parts.query) == {"demo": ["true"], "session": ["1000"]}


@pytest.mark.asyncio
async def test_onramp_demo_redirect_is_marked() -> None:
    client = StubRailClient(rail=Rail.ONRAMP, configured=False)

    intent = await _policy().obtain_intent(client, _request())

    assert intent.intent_id.startswith("onramp_demo_")
    assert parse_qs(urlsplit(intent.payment_url).query)["onramp"] == ["true"]


@pytest.mark.asyncio
async def test_live_intent_is_returned_untouched() -> None:
    live = _live_intent()
    client = StubRailClient(rail=Rail.HOSTED_CHARGE, result=RailResult.success(live))

    intent = await _policy().obtain_intent(client, _request())

    assert intent is live
    assert intent.is_demo is False


@pytest.mark.parametrize(
    "kind",
    [
        RailErrorKind.UNREACHABLE,
        RailErrorKind.UNAUTHORIZED,
        RailErrorKind.INVALID_REQUEST,
        RailErrorKind.RAIL_REJECTED,
    ],
)
@pytest.mark.asyncio
async def test_every_rail_error_falls_back_to_tagged_demo(kind: RailErrorKind) -> None:
    client = StubRailClient(
        rail=Rail.HOSTED_CHARGE,
        result=RailResult.failure(kind, "rail said no", status_code=500),
    )

    intent = await _policy().obtain_intent(client, _request())

    assert client.calls == 1
    assert intent.is_demo is True
    assert intent.demo_reason == kind.value
    assert intent.rail_error is not None
    assert intent.rail_error.kind is kind
    assert intent.rail_error.message == "rail said no"


@pytest.mark.asyncio
async def test_overrunning_rail_call_falls_back_as_unreachable() -> None:
    client = StubRailClient(
        rail=Rail.CHAIN_TRANSFER,
        result=RailResult.success(_live_intent()),
        delay=1.0,
    )

    intent = await _policy(timeout=0.05).obtain_intent(client, _request())

    assert intent.is_demo is True
    assert intent.intent_id.startswith("transfer_demo_")
    assert intent.rail_error is not None
    assert intent.rail_error.kind is RailErrorKind.UNREACHABLE


@pytest.mark.asyncio
async def test_unexpected_rail_exception_falls_back_as_unreachable() -> None:
    client = StubRailClient(
        rail=Rail.HOSTED_CHARGE,
        error=RuntimeError("Cannot send a request, as the client has been closed."),
    )

    intent = await _policy().obtain_intent(client, _request())

    assert client.calls == 1
    assert intent.is_demo is True
    assert intent.intent_id.startswith("demo_charge_")
    assert intent.rail_error is not None
    assert intent.rail_error.kind is RailErrorKind.UNREACHABLE
    assert "client has been closed" in intent.rail_error.message


@pytest.mark.asyncio
async def test_demo_ids_keep_increasing_when_clock_stalls() -> None:
    policy = _policy(ticks=itertools.repeat(42))
    client = StubRailClient(rail=Rail.HOSTED_CHARGE, configured=False)

    ids = [(await policy.obtain_intent(client, _request())).intent_id for _ in range(3)]

    assert ids == ["demo_charge_42", "demo_charge_43", "demo_charge_44"]
