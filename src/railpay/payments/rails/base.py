from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import httpx
import structlog

from ..enums import Rail, RailErrorKind
from ..models import (
    PaymentIntent,
    PaymentIntentRequest,
    RailResult,
    SubscriptionSpec,
    WebhookSubscription,
)

_UNAUTHORIZED_STATUSES = frozenset({401, 403})
_INVALID_REQUEST_STATUSES = frozenset({400, 404, 409, 422})


class RailClient(Protocol):
    """Operations every payment rail offers to the orchestrator."""

    rail: Rail

    @property
    def is_configured(self) -> bool:
        """Whether real (non-placeholder) credentials are available."""

    async def create_intent(
        self, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        """Create a payment intent on the rail without raising on failure."""


class SubscriptionRailClient(RailClient, Protocol):
    """Rail that additionally manages chain-activity notification subscriptions."""

    async def subscribe(
        self, spec: SubscriptionSpec
    ) -> RailResult[WebhookSubscription]:
        ...

    async def list_subscriptions(self) -> RailResult[Sequence[WebhookSubscription]]:
        ...

    async def update_subscription(
        self, subscription_id: str, notification_uri: str
    ) -> RailResult[None]:
        ...

    async def unsubscribe(self, subscription_id: str) -> RailResult[None]:
        ...


class RailTransport:
    """Bounded-time JSON transport that turns every failure into a ``RailResult``."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        rail: Rail,
        timeout_seconds: float,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._http = http_client
        self._rail = rail
        self._timeout = timeout_seconds
        self._logger = structlog.get_logger(__name__).bind(rail=rail.value)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> RailResult[Any]:
        try:
            response = await asyncio.wait_for(
                self._http.request(
                    method,
                    url,
                    headers=dict(headers or {}),
                    json=json,
                    params=dict(params) if params else None,
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except (TimeoutError, httpx.TimeoutException):
            self._logger.warning("rail_request_timeout", method=method, url=url)
            return RailResult.failure(
                RailErrorKind.UNREACHABLE,
                f"{self._rail.value} did not respond within {self._timeout:g}s",
            )
        except httpx.HTTPError as exc:
            self._logger.warning(
                "rail_request_unreachable", method=method, url=url, error=str(exc)
            )
            return RailResult.failure(
                RailErrorKind.UNREACHABLE, str(exc) or type(exc).__name__
            )
        except (httpx.InvalidURL, RuntimeError) as exc:
            # Misconfigured base URL or a client closed during shutdown.
            self._logger.exception("rail_request_failed", method=method, url=url)
            return RailResult.failure(
                RailErrorKind.UNREACHABLE, str(exc) or type(exc).__name__
            )

        if response.is_error:
            return self._error_result(method, url, response)

        if response.status_code == 204 or not response.content:
            return RailResult.success(None)
        try:
            return RailResult.success(response.json())
        except ValueError:
            self._logger.warning(
                "rail_response_unparseable",
                method=method,
                url=url,
                status_code=response.status_code,
            )
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST,
                "Rail returned an unparseable response",
                status_code=response.status_code,
            )

    def _error_result(
        self, method: str, url: str, response: httpx.Response
    ) -> RailResult[Any]:
        status_code = response.status_code
        message = _extract_error_message(response)
        self._logger.warning(
            "rail_request_rejected",
            method=method,
            url=url,
            status_code=status_code,
            error=message,
        )
        if status_code in _UNAUTHORIZED_STATUSES:
            kind = RailErrorKind.UNAUTHORIZED
        elif status_code in _INVALID_REQUEST_STATUSES:
            kind = RailErrorKind.INVALID_REQUEST
        else:
            kind = RailErrorKind.RAIL_REJECTED
        return RailResult.failure(kind, message, status_code=status_code)


def _extract_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase

    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            message = error.get("message") or error.get("type")
            if isinstance(message, str):
                return message
        if isinstance(error, str):
            return error
        message = body.get("errorMessage") or body.get("message")
        if isinstance(message, str):
            return message
    return response.reason_phrase or f"HTTP {response.status_code}"


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp returned by a rail, tolerating a ``Z`` suffix."""

    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def intent_window(
    created_at: datetime | None,
    expires_at: datetime | None,
    *,
    now: datetime,
    ttl: timedelta,
) -> tuple[datetime, datetime]:
    """Return a ``(created_at, expires_at)`` pair where expiry is always later."""

    created = created_at or now
    if expires_at is None or expires_at <= created:
        expires_at = created + ttl
    return created, expires_at
