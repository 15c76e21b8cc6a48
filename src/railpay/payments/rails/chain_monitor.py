from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

import structlog

from ..enums import Rail, RailErrorKind, SubscriptionEventType
from ..models import (
    PaymentIntent,
    PaymentIntentRequest,
    RailResult,
    SubscriptionFilter,
    SubscriptionSpec,
    WebhookSubscription,
)
from ..types import CdpEventFilter, CdpWebhookPayload, CdpWebhookUpdatePayload
from .base import RailTransport, intent_window
from .cdp_auth import CdpJwtSigner

# Transfers are priced 1:1 against the stablecoin.
_STABLE_CURRENCIES = frozenset({"USD", "USDC"})
_MAX_PAGES = 20


class ChainTransferMonitorClient:
    """Direct on-chain transfers plus the chain-activity subscription feed."""

    rail = Rail.CHAIN_TRANSFER

    def __init__(
        self,
        *,
        transport: RailTransport,
        signer: CdpJwtSigner | None,
        api_url: str,
        network_id: str,
        chain_id: int,
        token_contract_address: str,
        token_decimals: int,
        signature_header: str,
        intent_ttl: timedelta,
    ) -> None:
        self._transport = transport
        self._signer = signer
        self._api_url = api_url.rstrip("/")
        self._network_id = network_id
        self._chain_id = chain_id
        self._token_contract = token_contract_address
        self._token_decimals = token_decimals
        self._signature_header = signature_header
        self._intent_ttl = intent_ttl
        self._logger = structlog.get_logger(__name__)

    @property
    def is_configured(self) -> bool:
        return self._signer is not None

    @property
    def network_id(self) -> str:
        return self._network_id

    async def create_intent(
        self, request: PaymentIntentRequest
    ) -> RailResult[PaymentIntent]:
        if not self.is_configured:
            return RailResult.failure(
                RailErrorKind.UNAUTHORIZED,
                "Chain monitor credentials are not configured",
            )
        if request.amount.currency.upper() not in _STABLE_CURRENCIES:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST,
                f"On-chain transfers cannot be priced in {request.amount.currency}",
            )
        if _fractional_digits(request.amount.amount) > self._token_decimals:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST,
                f"Transfer amount has more than {self._token_decimals} decimal places",
            )

        created_at, expires_at = intent_window(
            None, None, now=datetime.now(UTC), ttl=self._intent_ttl
        )
        intent = PaymentIntent(
            intent_id=f"transfer_{uuid.uuid4().hex}",
            rail=self.rail,
            amount=request.amount,
            destination_asset=request.destination_asset,
            destination_network=request.destination_network,
            destination_address=request.destination_address,
            created_at=created_at,
            expires_at=expires_at,
            payment_url=self.transfer_uri(
                request.destination_address, request.amount.amount
            ),
            name=request.name,
            description=request.description,
            payment_method=request.payment_method,
        )
        self._logger.info(
            "chain_transfer_intent_created",
            intent_id=intent.intent_id,
            destination=request.destination_address,
            amount=str(request.amount.amount),
        )
        return RailResult.success(intent)

    def transfer_uri(self, destination_address: str, amount: Decimal) -> str:
        """Build an EIP-681 token transfer request for wallets to scan."""

        base_units = int(amount.scaleb(self._token_decimals))
        query = urlencode({"address": destination_address, "uint256": base_units})
        return f"ethereum:{self._token_contract}@{self._chain_id}/transfer?{query}"

    async def subscribe(
        self, spec: SubscriptionSpec
    ) -> RailResult[WebhookSubscription]:
        payload: CdpWebhookPayload = {
            "network_id": spec.network_id or self._network_id,
            "event_type": spec.event_type.value,
            "notification_uri": spec.notification_uri,
            "signature_header": spec.signature_header or self._signature_header,
        }
        if spec.event_type is SubscriptionEventType.ERC20_TRANSFER:
            event_filter: CdpEventFilter = {}
            if spec.filter.contract_address:
                event_filter["contract_address"] = spec.filter.contract_address
            if spec.filter.to_address:
                event_filter["to_address"] = spec.filter.to_address
            payload["event_filters"] = [event_filter]
        else:
            # An empty wallet id tracks external addresses only.
            payload["event_type_filter"] = {
                "addresses": list(spec.filter.addresses),
                "wallet_id": "",
            }

        result = await self._call("POST", "/webhooks", json=payload)
        if not result.ok:
            return RailResult(error=result.error)
        subscription = _parse_subscription(result.value)
        if subscription is None:
            return RailResult.failure(
                RailErrorKind.INVALID_REQUEST,
                "Webhook response missing subscription id",
            )
        self._logger.info(
            "chain_subscription_created",
            subscription_id=subscription.subscription_id,
            network=subscription.network_id,
            event_type=subscription.event_type.value,
            notification_uri=subscription.notification_uri,
        )
        return RailResult.success(subscription)

    async def list_subscriptions(self) -> RailResult[Sequence[WebhookSubscription]]:
        subscriptions: list[WebhookSubscription] = []
        page: str | None = None
        for _ in range(_MAX_PAGES):
            result = await self._call(
                "GET", "/webhooks", params={"page": page} if page else None
            )
            if not result.ok:
                return RailResult(error=result.error)
            body = result.value if isinstance(result.value, Mapping) else {}
            for item in body.get("data") or []:
                subscription = _parse_subscription(item)
                if subscription is not None:
                    subscriptions.append(subscription)
            next_page = body.get("next_page")
            has_more = bool(body.get("has_more"))
            if not has_more or not isinstance(next_page, str) or not next_page:
                break
            page = next_page
        else:
            self._logger.warning(
                "chain_subscriptions_truncated",
                pages=_MAX_PAGES,
                count=len(subscriptions),
            )
        self._logger.info("chain_subscriptions_listed", count=len(subscriptions))
        return RailResult.success(subscriptions)

    async def update_subscription(
        self, subscription_id: str, notification_uri: str
    ) -> RailResult[None]:
        payload: CdpWebhookUpdatePayload = {"notification_uri": notification_uri}
        result = await self._call("PUT", f"/webhooks/{subscription_id}", json=payload)
        if not result.ok:
            return RailResult(error=result.error)
        self._logger.info(
            "chain_subscription_updated",
            subscription_id=subscription_id,
            notification_uri=notification_uri,
        )
        return RailResult.success(None)

    async def unsubscribe(self, subscription_id: str) -> RailResult[None]:
        result = await self._call("DELETE", f"/webhooks/{subscription_id}")
        if not result.ok:
            return RailResult(error=result.error)
        self._logger.info("chain_subscription_deleted", subscription_id=subscription_id)
        return RailResult.success(None)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> RailResult[Any]:
        if self._signer is None:
            return RailResult.failure(
                RailErrorKind.UNAUTHORIZED,
                "Chain monitor credentials are not configured",
            )
        url = f"{self._api_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": self._signer.authorization_header(method, url),
        }
        return await self._transport.request(
            method, url, headers=headers, json=json, params=params
        )


def _fractional_digits(amount: Decimal) -> int:
    exponent = amount.normalize().as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def _parse_subscription(item: Any) -> WebhookSubscription | None:
    if not isinstance(item, Mapping):
        return None
    subscription_id = item.get("id")
    if not isinstance(subscription_id, str) or not subscription_id:
        return None
    try:
        event_type = SubscriptionEventType(str(item.get("event_type", "")))
    except ValueError:
        return None

    subscription_filter = SubscriptionFilter()
    filters = item.get("event_filters")
    if isinstance(filters, list) and filters and isinstance(filters[0], Mapping):
        subscription_filter = SubscriptionFilter(
            contract_address=filters[0].get("contract_address"),
            to_address=filters[0].get("to_address"),
        )
    type_filter = item.get("event_type_filter")
    if isinstance(type_filter, Mapping):
        addresses = type_filter.get("addresses") or []
        subscription_filter = SubscriptionFilter(
            addresses=tuple(str(address) for address in addresses)
        )

    return WebhookSubscription(
        subscription_id=subscription_id,
        network_id=str(item.get("network_id", "")),
        event_type=event_type,
        notification_uri=str(item.get("notification_uri", "")),
        filter=subscription_filter,
    )
