from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import structlog

from .enums import Rail, RailErrorKind
from .models import PaymentIntent, PaymentIntentRequest, RailError
from .rails.base import RailClient

_DEMO_ID_PREFIXES: dict[Rail, str] = {
    Rail.HOSTED_CHARGE: "demo_charge_",
    Rail.ONRAMP: "onramp_demo_",
    Rail.CHAIN_TRANSFER: "transfer_demo_",
}


class DemoFallbackPolicy:
    """Turns every create-intent attempt into a usable intent.

    Unconfigured rails, error results and calls that overrun ``timeout_seconds``
    all yield a local demo intent that points the customer back to the
    storefront instead of blocking checkout.
    """

    def __init__(
        self,
        *,
        frontend_url: str,
        intent_ttl: timedelta,
        timeout_seconds: float,
        monotonic_ns: Callable[[], int] = time.monotonic_ns,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._frontend_url = frontend_url.rstrip("/")
        self._intent_ttl = intent_ttl
        self._timeout = timeout_seconds
        self._monotonic_ns = monotonic_ns
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_sequence = 0
        self._logger = structlog.get_logger(__name__)

    async def obtain_intent(
        self, client: RailClient, request: PaymentIntentRequest
    ) -> PaymentIntent:
        if not client.is_configured:
            intent = self.demo_intent(client.rail, request, reason="not_configured")
            self._log_created(intent)
            return intent

        try:
            result = await asyncio.wait_for(
                client.create_intent(request), timeout=self._timeout
            )
        except TimeoutError:
            error = RailError(
                kind=RailErrorKind.UNREACHABLE,
                message=(
                    f"{client.rail.value} did not respond within {self._timeout:g}s"
                ),
            )
        except Exception as exc:
            self._logger.exception("rail_call_failed", rail=client.rail.value)
            error = RailError(
                kind=RailErrorKind.UNREACHABLE,
                message=str(exc) or type(exc).__name__,
            )
        else:
            if result.ok and result.value is not None:
                self._log_created(result.value)
                return result.value
            error = result.error or RailError(
                kind=RailErrorKind.INVALID_REQUEST, message="Rail returned no intent"
            )

        self._logger.warning(
            "rail_fallback_triggered",
            rail=client.rail.value,
            error_kind=error.kind.value,
            error=error.message,
            status_code=error.status_code,
        )
        intent = self.demo_intent(
            client.rail, request, reason=error.kind.value, error=error
        )
        self._log_created(intent)
        return intent

    def demo_intent(
        self,
        rail: Rail,
        request: PaymentIntentRequest,
        *,
        reason: str,
        error: RailError | None = None,
    ) -> PaymentIntent:
        sequence = self._next_sequence()
        created_at = self._clock()
        query = {"demo": "true", "session": str(sequence)}
        if rail is Rail.ONRAMP:
            query["onramp"] = "true"
        return PaymentIntent(
            intent_id=f"{_DEMO_ID_PREFIXES[rail]}{sequence}",
            rail=rail,
            amount=request.amount,
            destination_asset=request.destination_asset,
            destination_network=request.destination_network,
            destination_address=request.destination_address,
            created_at=created_at,
            expires_at=created_at + self._intent_ttl,
            payment_url=f"{self._frontend_url}/success?{urlencode(query)}",
            is_demo=True,
            name=request.name,
            description=request.description,
            payment_method=request.payment_method,
            demo_reason=reason,
            rail_error=error,
        )

    def _next_sequence(self) -> int:
        # Ids must keep increasing even when the clock does not.
        self._last_sequence = max(self._monotonic_ns(), self._last_sequence + 1)
        return self._last_sequence

    def _log_created(self, intent: PaymentIntent) -> None:
        self._logger.info(
            "payment_intent_created",
            intent_id=intent.intent_id,
            rail=intent.rail.value,
            amount=str(intent.amount),
            is_demo=intent.is_demo,
            demo_reason=intent.demo_reason,
        )
