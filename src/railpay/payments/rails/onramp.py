from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from ..enums import PaymentMethod, PaymentStatus, Rail, RailErrorKind
from ..models import Money, PaymentIntent, PaymentIntentRequest, RailResult
from ..types import OnrampOrderPayload, OnrampPaymentMethod, OnrampQuotePayload
from .base import RailTransport, intent_window, parse_timestamp
from .cdp_auth import CdpJwtSigner


def onramp_payment_method(method: PaymentMethod | None) -> OnrampPaymentMethod:
    """Map a checkout payment method to the onramp guest-checkout flavour."""

    if method is PaymentMethod.APPLE_PAY:
        return "GUEST_CHECKOUT_APPLE_PAY"
    return "GUEST_CHECKOUT_DEBIT_CARD"


def map_order_status(raw_status: object) -> PaymentStatus:
    if not isinstance(raw_status, str):
        return PaymentStatus.CREATED
    status = raw_status.upper()
    if "COMPLETED" in status or "SUCCESS" in status:
        return PaymentStatus.CONFIRMED
    if any(marker in status for marker in ("FAILED", "CANCELED", "EXPIRED")):
        return PaymentStatus.FAILED
    if "PROCESSING" in status or "IN_PROGRESS" in status:
        return PaymentStatus.PENDING
    return PaymentStatus.CREATED


class OnrampClient:
    """Client for fiat-to-USDC onramp orders (card, Apple Pay, Google Pay)."""

    rail = Rail.ONRAMP

    def __init__(
        self,
        *,
        transport: RailTransport,
        signer: CdpJwtSigner | None,
        api_url: str,
        api_version: str,
        intent_ttl: timedelta,
    ) -> None:
        self._transport = transport
        self._signer = signer
        self._api_url = api_url.rstrip("/")
        self._api_version = api_version
        self._intent_ttl = intent_ttl
        self._logger = structlog.get_logger(__name__)

    @property
    def is_configured(self) -> bool:
        return self._signer is not None

    async def create_intent(
        self, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        payment_method = onramp_payment_method(request.payment_method)
        payload: OnrampOrderPayload = {
            "paymentAmount": {
                "amount": str(request.amount.amount),
                "currency": request.amount.currency,
            },
            "purchaseNetwork": request.destination_network,
            "purchaseAsset": request.destination_asset,
            "destinationWallet": {
                "address": request.destination_address,
                "blockchains": [request.destination_network],
            },
            "paymentMethod": payment_method,
            "guestCheckout": True,
        }
        self._logger.info(
            "onramp_order_requested",
            amount=str(request.amount),
            asset=request.destination_asset,
            network=request.destination_network,
            destination=request.destination_address,
            payment_method=payment_method,
        )
        result = await self._call("POST", "/onramp/orders", json=payload)
        if not result.ok:
            return RailResult(error=result.error)
        return self._parse_order(result.value, request)

    async def get_order_status(self, order_id: str) -> RailResult[Mapping[str, Any]]:
        result = await self._call("GET", f"/onramp/orders/{order_id}")
        if not result.ok:
            return RailResult(error=result.error)
        return _unwrap_data(result.value)

    async def get_quote(
        self,
        amount: Money,
        payment_method: PaymentMethod | None,
        *,
        network: str,
        asset: str,
    ) -> RailResult[Mapping[str, Any]]:
        payload: OnrampQuotePayload = {
            "paymentAmount": {
                "amount": str(amount.amount),
                "currency": amount.currency,
            },
            "purchaseNetwork": network,
            "purchaseAsset": asset,
            "paymentMethod": onramp_payment_method(payment_method),
        }
        result = await self._call("POST", "/onramp/quote", json=payload)
        if not result.ok:
            return RailResult(error=result.error)
        return _unwrap_data(result.value)

    async def _call(
        self, method: str, path: str, *, json: Any = None
    ) -> RailResult[Any]:
        if self._signer is None:
            return RailResult.failure(
                RailErrorKind.UNAUTHORIZED, "Onramp credentials are not configured"
            )
        url = f"{self._api_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": self._signer.authorization_header(method, url),
            "CB-VERSION": self._api_version,
        }
        return await self._transport.request(method, url, headers=headers, json=json)

    def _parse_order(
        self, body: Any, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        unwrapped = _unwrap_data(body)
        if not unwrapped.ok:
            return RailResult(error=unwrapped.error)
        data = unwrapped.value or {}
        order = data.get("order") if isinstance(data.get("order"), Mapping) else data

        order_id = order.get("id") or order.get("orderId")
        link = data.get("paymentLink") or order.get("paymentLink")
        if isinstance(link, Mapping):
            link = link.get("url")
        if not isinstance(order_id, str) or not order_id:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST, "Onramp response missing order id"
            )
        if not isinstance(link, str) or not link:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST, "Onramp response missing payment link"
            )

        created_at, expires_at = intent_window(
            parse_timestamp(order.get("createdAt")),
            parse_timestamp(order.get("expiresAt") or data.get("expiresAt")),
            now=datetime.now(UTC),
            ttl=self._intent_ttl,
        )
        intent = PaymentIntent(
            intent_id=order_id,
            rail=self.rail,
            amount=request.amount,
            destination_asset=request.destination_asset,
            destination_network=request.destination_network,
            destination_address=request.destination_address,
            created_at=created_at,
            expires_at=expires_at,
            payment_url=link,
            status=map_order_status(order.get("status")),
            name=request.name,
            description=request.description,
            payment_method=request.payment_method,
            provider_reference=order_id,
        )
        self._logger.info(
            "onramp_order_created",
            intent_id=order_id,
            status=intent.status.value,
            payment_link=link,
        )
        return RailResult.success(intent)


def _unwrap_data(body: Any) -> RailResult[Mapping[str, Any]]:
    if not isinstance(body, Mapping):
        return RailResult.failure(
            RailErrorKind.INVALID_REQUEST, "Onramp response is not a JSON object"
        )
    data = body.get("data", body)
    if not isinstance(data, Mapping):
        return RailResult.failure(
            RailErrorKind.INVALID_REQUEST, "Onramp response missing data object"
        )
    return RailResult.success(data)
