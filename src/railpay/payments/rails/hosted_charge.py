from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, cast

import structlog

from ..enums import PaymentStatus, Rail, RailErrorKind
from ..models import PaymentIntent, PaymentIntentRequest, RailResult
from ..types import HostedChargeMetadata, HostedChargePayload
from .base import RailTransport, intent_window, parse_timestamp

_TIMELINE_STATUS_MAP = {
    "NEW": PaymentStatus.CREATED,
    "SIGNED": PaymentStatus.CREATED,
    "PENDING": PaymentStatus.PENDING,
    "COMPLETED": PaymentStatus.CONFIRMED,
    "CONFIRMED": PaymentStatus.CONFIRMED,
    "RESOLVED": PaymentStatus.RESOLVED,
    "UNRESOLVED": PaymentStatus.DELAYED,
    "DELAYED": PaymentStatus.DELAYED,
    "EXPIRED": PaymentStatus.FAILED,
    "CANCELED": PaymentStatus.FAILED,
    "FAILED": PaymentStatus.FAILED,
}


def map_timeline_status(charge: Mapping[str, Any]) -> PaymentStatus:
    """Return the status carried by the most recent charge timeline entry."""

    timeline = charge.get("timeline")
    if not isinstance(timeline, list) or not timeline:
        return PaymentStatus.CREATED
    latest = timeline[-1]
    raw_status = latest.get("status") if isinstance(latest, Mapping) else None
    if not isinstance(raw_status, str):
        return PaymentStatus.CREATED
    return _TIMELINE_STATUS_MAP.get(raw_status.upper(), PaymentStatus.CREATED)


class HostedChargeClient:
    """Client for the hosted-checkout charge API."""

    rail = Rail.HOSTED_CHARGE

    def __init__(
        self,
        *,
        transport: RailTransport,
        api_key: str | None,
        api_url: str,
        api_version: str,
        frontend_url: str,
        intent_ttl: timedelta,
    ) -> None:
        self._transport = transport
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._api_version = api_version
        self._frontend_url = frontend_url.rstrip("/")
        self._intent_ttl = intent_ttl
        self._logger = structlog.get_logger(__name__)

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def create_intent(
        self, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        if not self.is_configured:
            return RailResult.failure(
                RailErrorKind.UNAUTHORIZED, "Hosted charge API key is not configured"
            )

        payload = self._build_payload(request)
        self._logger.info(
            "hosted_charge_create_requested",
            amount=str(request.amount),
            name=request.name,
            network=request.destination_network,
            destination=request.destination_address,
        )
        result = await self._transport.request(
            "POST", f"{self._api_url}/charges", headers=self._headers(), json=payload
        )
        if not result.ok:
            return RailResult(error=result.error)
        return self._parse_charge(result.value, request)

    async def get_charge(self, charge_id: str) -> RailResult[Mapping[str, Any]]:
        if not self.is_configured:
            return RailResult.failure(
                RailErrorKind.UNAUTHORIZED, "Hosted charge API key is not configured"
            )
        result = await self._transport.request(
            "GET", f"{self._api_url}/charges/{charge_id}", headers=self._headers()
        )
        if not result.ok:
            return RailResult(error=result.error)
        data = result.value.get("data") if isinstance(result.value, Mapping) else None
        if not isinstance(data, Mapping):
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST, "Charge response missing data object"
            )
        return RailResult.success(data)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-CC-Api-Key": self._api_key or "",
            "X-CC-Version": self._api_version,
        }

    def _build_payload(self, request: PaymentIntentRequest) -> HostedChargePayload:
        metadata: dict[str, str] = {
            "network": request.destination_network,
            "destination_address": request.destination_address,
            "purchase_currency": request.destination_asset,
            "created_at": datetime.now(UTC).isoformat(),
            "integration": f"hosted-charge-{request.destination_asset.lower()}"
            f"-{request.destination_network}",
        }
        metadata.update(request.metadata)
        payload: HostedChargePayload = {
            "name": request.name,
            "description": request.description
            or f"{request.name} - {request.destination_asset} payment on "
            f"{request.destination_network.capitalize()}",
            "local_price": {
                "amount": str(request.amount.amount),
                "currency": request.amount.currency,
            },
            "pricing_type": "fixed_price",
            "redirect_url": request.redirect_url or f"{self._frontend_url}/success",
            "cancel_url": request.cancel_url or f"{self._frontend_url}/",
            "metadata": cast(HostedChargeMetadata, metadata),
        }
        return payload

    def _parse_charge(
        self, body: Any, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        data = body.get("data") if isinstance(body, Mapping) else None
        if not isinstance(data, Mapping):
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST, "Charge response missing data object"
            )
        charge_id = data.get("id")
        hosted_url = data.get("hosted_url")
        if not isinstance(charge_id, str) or not charge_id:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST, "Charge response missing 'id' field"
            )
        if not isinstance(hosted_url, str) or not hosted_url:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST, "Charge response missing 'hosted_url'"
            )

        created_at, expires_at = intent_window(
            parse_timestamp(data.get("created_at")),
            parse_timestamp(data.get("expires_at")),
            now=datetime.now(UTC),
            ttl=self._intent_ttl,
        )
        code = data.get("code")
        intent = PaymentIntent(
            intent_id=charge_id,
            rail=self.rail,
            amount=request.amount,
            destination_asset=request.destination_asset,
            destination_network=request.destination_network,
            destination_address=request.destination_address,
            created_at=created_at,
            expires_at=expires_at,
            payment_url=hosted_url,
            status=map_timeline_status(data),
            name=request.name,
            description=request.description,
            payment_method=request.payment_method,
            provider_reference=code if isinstance(code, str) else None,
        )
        self._logger.info(
            "hosted_charge_created",
            intent_id=intent.intent_id,
            hosted_url=hosted_url,
            status=intent.status.value,
        )
        return RailResult.success(intent)
