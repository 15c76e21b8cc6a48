from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog

from railpay.core.config import Settings
from railpay.core.constants import HOSTED_CHARGE_SIGNATURE_HEADER
from railpay.payments.enums import (
    EventKind,
    EventOutcome,
    PaymentMethod,
    Rail,
    SubscriptionEventType,
)
from railpay.payments.exceptions import (
    InvalidSignatureError,
    MalformedPayloadError,
    NormalizationError,
    PaymentNotFoundError,
    PaymentPlanNotFoundError,
    PaymentRequestError,
    UnknownEventKindError,
    UnsupportedRailError,
)
from railpay.payments.fallback import DemoFallbackPolicy
from railpay.payments.models import (
    EventAck,
    EventApplication,
    Money,
    PaymentIntent,
    PaymentIntentRequest,
    RailError,
    SubscriptionFilter,
    SubscriptionSpec,
    UnresolvedEvent,
    WebhookSubscription,
    parse_amount,
)
from railpay.payments.normalizer import EventNormalizer
from railpay.payments.rails.base import RailClient, SubscriptionRailClient
from railpay.payments.rails.onramp import OnrampClient
from railpay.payments.repository import PaymentRepository
from railpay.payments.state_machine import PaymentStatusMachine
from railpay.payments.verification import WebhookVerifier

USDC_PAYMENT_PATH = "/cdp/usdc-payment"
ADDRESS_ACTIVITY_PATH = "/cdp/address-activity"


@dataclass(slots=True)
class PaymentRequest:
    """Input payload required to initiate a payment."""

    amount: Decimal | str | None = None
    currency: str | None = None
    plan_code: str | None = None
    name: str | None = None
    description: str | None = None
    destination_address: str | None = None
    payment_method: PaymentMethod | None = None
    redirect_url: str | None = None
    cancel_url: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class PaymentOrchestrator:
    """Coordinates intent creation, webhook reconciliation and subscriptions."""

    def __init__(
        self,
        *,
        settings: Settings,
        rails: Mapping[Rail, RailClient],
        chain_monitor: SubscriptionRailClient,
        onramp: OnrampClient,
        fallback: DemoFallbackPolicy,
        verifier: WebhookVerifier,
        normalizer: EventNormalizer,
        state_machine: PaymentStatusMachine,
        repository: PaymentRepository,
    ) -> None:
        self._settings = settings
        self._rails = dict(rails)
        self._chain_monitor = chain_monitor
        self._onramp = onramp
        self._fallback = fallback
        self._verifier = verifier
        self._normalizer = normalizer
        self._state_machine = state_machine
        self._repository = repository
        self._logger = structlog.get_logger(__name__)

    async def create_payment(self, request: PaymentRequest) -> PaymentIntent:
        amount, currency, name, description = self._resolve_pricing(request)
        merchant = self._settings.merchant
        metadata = dict(request.metadata)
        if request.plan_code:
            metadata.setdefault("plan_code", request.plan_code.strip().lower())
        if request.payment_method is not None:
            metadata.setdefault("payment_method", request.payment_method.value)

        rail = (
            request.payment_method.rail
            if request.payment_method is not None
            else Rail.HOSTED_CHARGE
        )
        intent_request = PaymentIntentRequest(
            amount=Money(amount=amount, currency=currency),
            name=name,
            destination_address=request.destination_address
            or merchant.destination_address,
            destination_asset=merchant.destination_asset,
            destination_network=merchant.destination_network,
            description=description,
            payment_method=request.payment_method,
            redirect_url=request.redirect_url,
            cancel_url=request.cancel_url,
            metadata=metadata,
        )
        intent = await self._fallback.obtain_intent(self._rails[rail], intent_request)
        self._repository.add_intent(intent)
        return intent

    async def handle_event(
        self, rail: Rail, raw_body: bytes, headers: Mapping[str, str]
    ) -> EventAck:
        if rail is Rail.ONRAMP:
            raise UnsupportedRailError("Onramp settlement is observed on-chain")

        signature = _header(headers, self._signature_header(rail))
        try:
            payload = self._verifier.verify(rail, raw_body, signature)
        except InvalidSignatureError as exc:
            return EventAck(
                status_code=401,
                body=_rejection("invalid_signature", exc),
            )
        except MalformedPayloadError as exc:
            return EventAck(
                status_code=400,
                body=_rejection("malformed_payload", exc),
            )

        try:
            event = self._normalizer.normalize(rail, payload)
        except UnknownEventKindError as exc:
            self._logger.warning(
                "payment_event_unknown_kind",
                rail=rail.value,
                event_type=str(exc.event_type),
            )
            return _ack(EventOutcome.UNKNOWN_KIND)
        except NormalizationError as exc:
            self._logger.warning(
                "payment_event_unparseable", rail=rail.value, error=str(exc)
            )
            return _ack(EventOutcome.DROPPED)

        if event is None:
            return _ack(EventOutcome.DROPPED)

        application = await self._state_machine.apply(event)
        return _ack(application.outcome, application)

    def get_payment_status(self, intent_id: str) -> PaymentIntent:
        intent = self._repository.get_intent(intent_id)
        if intent is None:
            raise PaymentNotFoundError(f"Payment intent '{intent_id}' not found")
        return intent

    async def simulate_demo_event(
        self, intent_id: str, kind: EventKind
    ) -> tuple[PaymentIntent, EventApplication]:
        application = await self._state_machine.simulate(intent_id, kind)
        return self.get_payment_status(intent_id), application

    def list_unresolved_events(self) -> Sequence[UnresolvedEvent]:
        return self._repository.list_unresolved()

    def rail_summary(self) -> dict[str, bool]:
        return {
            rail.value: client.is_configured for rail, client in self._rails.items()
        }

    async def list_subscriptions(self) -> dict[str, Any]:
        result = await self._chain_monitor.list_subscriptions()
        if not result.ok:
            return _failure(result.error)
        webhooks = [_subscription_dict(item) for item in result.value or []]
        return {"success": True, "webhooks": webhooks, "count": len(webhooks)}

    async def create_subscription(
        self,
        *,
        event_type: SubscriptionEventType,
        notification_uri: str,
        contract_address: str | None = None,
        to_address: str | None = None,
        addresses: Sequence[str] = (),
        network_id: str | None = None,
    ) -> dict[str, Any]:
        spec = SubscriptionSpec(
            event_type=event_type,
            notification_uri=notification_uri,
            filter=SubscriptionFilter(
                contract_address=contract_address,
                to_address=to_address,
                addresses=tuple(addresses),
            ),
            network_id=network_id,
        )
        return await self._subscribe(spec)

    async def update_subscription(
        self, subscription_id: str, notification_uri: str
    ) -> dict[str, Any]:
        result = await self._chain_monitor.update_subscription(
            subscription_id, notification_uri
        )
        if not result.ok:
            return _failure(result.error)
        return {
            "success": True,
            "webhook_id": subscription_id,
            "notification_uri": notification_uri,
        }

    async def delete_subscription(self, subscription_id: str) -> dict[str, Any]:
        result = await self._chain_monitor.unsubscribe(subscription_id)
        if not result.ok:
            return _failure(result.error)
        return {"success": True, "webhook_id": subscription_id}

    async def setup_payment_webhooks(
        self, base_uri: str | None = None
    ) -> dict[str, Any]:
        """Register the transfer and address-activity feeds under ``base_uri``."""

        base = base_uri or self._settings.merchant.base_notification_url or ""
        base = base.rstrip("/")
        if not base:
            raise PaymentRequestError("A base notification URL is required")

        cdp = self._settings.cdp
        merchant_address = self._settings.merchant.destination_address
        transfer = await self._subscribe(
            SubscriptionSpec(
                event_type=SubscriptionEventType.ERC20_TRANSFER,
                notification_uri=f"{base}{USDC_PAYMENT_PATH}",
                filter=SubscriptionFilter(
                    contract_address=cdp.token_contract_address,
                    to_address=merchant_address,
                ),
            )
        )
        activity = await self._subscribe(
            SubscriptionSpec(
                event_type=SubscriptionEventType.WALLET_ACTIVITY,
                notification_uri=f"{base}{ADDRESS_ACTIVITY_PATH}",
                filter=SubscriptionFilter(addresses=(merchant_address,)),
            )
        )
        self._logger.info(
            "payment_webhooks_setup",
            base_uri=base,
            usdc_payment=transfer["success"],
            address_activity=activity["success"],
        )
        return {
            "success": transfer["success"] and activity["success"],
            "webhooks": {"usdc_payment": transfer, "address_activity": activity},
        }

    async def get_onramp_quote(
        self,
        *,
        amount: Decimal | str,
        currency: str,
        payment_method: PaymentMethod | None = None,
    ) -> dict[str, Any]:
        merchant = self._settings.merchant
        money = Money(amount=self._parse_positive(amount), currency=currency.upper())
        result = await self._onramp.get_quote(
            money,
            payment_method,
            network=merchant.destination_network,
            asset=merchant.destination_asset,
        )
        if not result.ok:
            return _failure(result.error)
        return {"success": True, "quote": dict(result.value or {})}

    async def get_onramp_order(self, order_id: str) -> dict[str, Any]:
        intent = self._repository.get_intent(order_id)
        if intent is not None and intent.is_demo:
            return {
                "success": True,
                "order": {
                    "id": intent.intent_id,
                    "status": intent.status.value,
                    "demo": True,
                },
            }
        result = await self._onramp.get_order_status(order_id)
        if not result.ok:
            return _failure(result.error)
        return {"success": True, "order": dict(result.value or {})}

    async def _subscribe(self, spec: SubscriptionSpec) -> dict[str, Any]:
        result = await self._chain_monitor.subscribe(spec)
        if not result.ok or result.value is None:
            return _failure(result.error)
        return {"success": True, "webhook": _subscription_dict(result.value)}

    def _resolve_pricing(
        self, request: PaymentRequest
    ) -> tuple[Decimal, str, str, str | None]:
        payments = self._settings.payments
        if request.plan_code:
            try:
                plan = payments.get_plan(request.plan_code)
            except KeyError as exc:
                raise PaymentPlanNotFoundError(
                    f"Unknown payment plan '{request.plan_code}'"
                ) from exc
            amount = (
                self._parse_positive(request.amount)
                if request.amount is not None
                else plan.amount
            )
            currency = (request.currency or plan.currency).upper()
            return (
                amount,
                currency,
                request.name or plan.name,
                request.description or plan.description,
            )

        if request.amount is None or not request.currency:
            raise PaymentRequestError(
                "amount and currency are required unless plan_code is given"
            )
        return (
            self._parse_positive(request.amount),
            request.currency.strip().upper(),
            request.name or payments.default_product_name,
            request.description,
        )

    @staticmethod
    def _parse_positive(value: Decimal | str | None) -> Decimal:
        try:
            amount = parse_amount(value)
        except ValueError as exc:
            raise PaymentRequestError(str(exc)) from exc
        if amount <= 0:
            raise PaymentRequestError("amount must be greater than zero")
        return amount

    def _signature_header(self, rail: Rail) -> str:
        if rail is Rail.HOSTED_CHARGE:
            return HOSTED_CHARGE_SIGNATURE_HEADER
        return self._settings.cdp.signature_header


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def _ack(
    outcome: EventOutcome, application: EventApplication | None = None
) -> EventAck:
    body: dict[str, Any] = {"received": True, "outcome": outcome.value}
    if application is not None and application.intent_id is not None:
        body["intent_id"] = application.intent_id
    if application is not None and application.transition is not None:
        body["status"] = application.transition.current.value
    return EventAck(status_code=200, body=body)


def _rejection(error: str, exc: Exception) -> dict[str, Any]:
    return {"received": False, "error": error, "detail": str(exc)}


def _failure(error: RailError | None) -> dict[str, Any]:
    details = error.as_dict() if error is not None else {"kind": "unknown"}
    return {"success": False, "error": details}


def _subscription_dict(subscription: WebhookSubscription) -> dict[str, Any]:
    return {
        "id": subscription.subscription_id,
        "network_id": subscription.network_id,
        "event_type": subscription.event_type.value,
        "notification_uri": subscription.notification_uri,
        "filter": {
            "contract_address": subscription.filter.contract_address,
            "to_address": subscription.filter.to_address,
            "addresses": list(subscription.filter.addresses),
        },
    }
