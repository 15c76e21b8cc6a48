from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from railpay.payments.enums import (
    EventKind,
    PaymentMethod,
    PaymentStatus,
    Rail,
    SubscriptionEventType,
)
from railpay.payments.models import PaymentIntent, UnresolvedEvent
from railpay.payments.service import PaymentRequest


class CheckoutRequest(BaseModel):
    """Client payload for initiating a payment on any rail."""

    amount: Decimal | None = Field(
        default=None, gt=Decimal("0"), description="Price in ``currency`` units"
    )
    currency: str | None = Field(default=None, min_length=3, max_length=5)
    plan_code: str | None = Field(
        default=None,
        min_length=2,
        max_length=64,
        description="Subscription plan supplying amount and currency",
    )
    name: str | None = Field(default=None, max_length=128)
    description: str | None = Field(default=None, max_length=512)
    payment_method: PaymentMethod | None = Field(
        default=None, description="Selects the rail; hosted checkout when omitted"
    )
    destination_address: str | None = Field(default=None, max_length=128)
    redirect_url: HttpUrl | None = None
    cancel_url: HttpUrl | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(str_strip_whitespace=True)

    def to_domain(self) -> PaymentRequest:
        return PaymentRequest(
            amount=self.amount,
            currency=self.currency,
            plan_code=self.plan_code,
            name=self.name,
            description=self.description,
            destination_address=self.destination_address,
            payment_method=self.payment_method,
            redirect_url=str(self.redirect_url) if self.redirect_url else None,
            cancel_url=str(self.cancel_url) if self.cancel_url else None,
            metadata=dict(self.metadata),
        )


class OnrampCheckoutRequest(CheckoutRequest):
    payment_method: PaymentMethod | None = PaymentMethod.DEBIT_CARD


class PaymentIntentResponse(BaseModel):
    """Public view of a payment intent."""

    intent_id: str
    rail: Rail
    status: PaymentStatus
    amount: Decimal
    currency: str
    payment_url: str = Field(
        ..., description="Hosted link, demo redirect or on-chain payment URI"
    )
    is_demo: bool
    destination_address: str
    destination_asset: str
    destination_network: str
    created_at: datetime
    expires_at: datetime
    updated_at: datetime | None = None
    name: str | None = None
    description: str | None = None
    payment_method: PaymentMethod | None = None
    provider_reference: str | None = None
    demo_reason: str | None = None
    rail_error: dict[str, Any] | None = None

    @classmethod
    def from_intent(cls, intent: PaymentIntent) -> PaymentIntentResponse:
        return cls(
            intent_id=intent.intent_id,
            rail=intent.rail,
            status=intent.status,
            amount=intent.amount.amount,
            currency=intent.amount.currency,
            payment_url=intent.payment_url,
            is_demo=intent.is_demo,
            destination_address=intent.destination_address,
            destination_asset=intent.destination_asset,
            destination_network=intent.destination_network,
            created_at=intent.created_at,
            expires_at=intent.expires_at,
            updated_at=intent.updated_at,
            name=intent.name,
            description=intent.description,
            payment_method=intent.payment_method,
            provider_reference=intent.provider_reference,
            demo_reason=intent.demo_reason,
            rail_error=intent.rail_error.as_dict() if intent.rail_error else None,
        )


class SimulateEventRequest(BaseModel):
    kind: EventKind = Field(..., description="Status the demo rail should report")


class SimulateEventResponse(BaseModel):
    outcome: str
    payment: PaymentIntentResponse


class UnresolvedEventResponse(BaseModel):
    """Event kept for audit because it matched no single intent."""

    event_id: str
    rail: Rail
    kind: EventKind
    intent_ref: str | None
    reason: str
    candidates: list[str]
    observed_at: datetime
    recorded_at: datetime

    @classmethod
    def from_domain(cls, unresolved: UnresolvedEvent) -> UnresolvedEventResponse:
        event = unresolved.event
        return cls(
            event_id=event.event_id,
            rail=event.rail,
            kind=event.kind,
            intent_ref=str(event.intent_ref) if event.intent_ref else None,
            reason=unresolved.reason.value,
            candidates=list(unresolved.candidates),
            observed_at=event.observed_at,
            recorded_at=unresolved.recorded_at,
        )


class WebhookAck(BaseModel):
    """Acknowledgement returned to the rail that delivered a webhook."""

    received: bool = True
    outcome: str | None = None
    intent_id: str | None = None
    status: PaymentStatus | None = None
    error: str | None = None
    detail: str | None = None


class OnrampQuoteRequest(BaseModel):
    amount: Decimal = Field(..., gt=Decimal("0"))
    currency: str = Field(default="USD", min_length=3, max_length=3)
    payment_method: PaymentMethod | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class SubscriptionCreateRequest(BaseModel):
    """Chain-activity subscription to register with the monitor."""

    event_type: SubscriptionEventType
    notification_uri: HttpUrl
    contract_address: str | None = None
    to_address: str | None = None
    addresses: list[str] = Field(default_factory=list)
    network_id: str | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class SubscriptionUpdateRequest(BaseModel):
    notification_uri: HttpUrl


class SetupWebhooksRequest(BaseModel):
    base_uri: HttpUrl | None = Field(
        default=None,
        description="API root that the notification paths are appended to",
    )
