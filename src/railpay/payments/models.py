from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, TypeVar

from .enums import (
    EventKind,
    EventOutcome,
    PaymentMethod,
    PaymentStatus,
    Rail,
    RailErrorKind,
    SubscriptionEventType,
    UnresolvedReason,
)

T = TypeVar("T")


def parse_amount(value: object) -> Decimal:
    """Parse a decimal amount, rejecting non-finite and negative values."""

    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


@dataclass(slots=True, frozen=True)
class Money:
    amount: Decimal
    currency: str

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


@dataclass(slots=True, frozen=True)
class RailError:
    """Typed failure reported by a rail client instead of raising."""

    kind: RailErrorKind
    message: str
    status_code: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
        }


@dataclass(frozen=True)
class RailResult(Generic[T]):
    """Either the value returned by a rail or the error it reported."""

    value: T | None = None
    error: RailError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> RailResult[T]:
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: RailErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> RailResult[T]:
        return cls(error=RailError(kind=kind, message=message, status_code=status_code))


@dataclass(slots=True)
class PaymentIntentRequest:
    """Rail-agnostic description of what the customer is paying for."""

    amount: Money
    name: str
    destination_address: str
    destination_asset: str
    destination_network: str
    description: str | None = None
    payment_method: PaymentMethod | None = None
    redirect_url: str | None = None
    cancel_url: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class PaymentIntent:
    """One attempt to collect payment on one rail."""

    intent_id: str
    rail: Rail
    amount: Money
    destination_asset: str
    destination_network: str
    destination_address: str
    created_at: datetime
    expires_at: datetime
    payment_url: str
    status: PaymentStatus = PaymentStatus.CREATED
    is_demo: bool = False
    name: str | None = None
    description: str | None = None
    payment_method: PaymentMethod | None = None
    provider_reference: str | None = None
    demo_reason: str | None = None
    rail_error: RailError | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        if not self.payment_url:
            raise ValueError("payment_url must not be empty")

    @property
    def correlation_key(self) -> IntentRef:
        return IntentRef.derived(self.destination_address, self.amount.amount)


@dataclass(slots=True, frozen=True)
class IntentRef:
    """Best-effort pointer from an event back to the intent it concerns."""

    intent_id: str | None = None
    address: str | None = None
    amount: Decimal | None = None

    @classmethod
    def exact(cls, intent_id: str) -> IntentRef:
        return cls(intent_id=intent_id)

    @classmethod
    def derived(cls, address: str, amount: Decimal) -> IntentRef:
        return cls(address=address.strip().lower(), amount=amount)

    @property
    def is_exact(self) -> bool:
        return self.intent_id is not None

    def __str__(self) -> str:
        if self.intent_id is not None:
            return self.intent_id
        return f"{self.address}:{self.amount}"


@dataclass(slots=True, frozen=True)
class PaymentEvent:
    """Canonical asynchronous notification, independent of the rail schema."""

    event_id: str
    rail: Rail
    kind: EventKind
    intent_ref: IntentRef | None
    observed_at: datetime
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(slots=True, frozen=True)
class StatusTransition:
    intent_id: str
    previous: PaymentStatus
    current: PaymentStatus
    event_id: str
    rail: Rail
    at: datetime
    anomaly: str | None = None


@dataclass(slots=True, frozen=True)
class UnresolvedEvent:
    """Event kept for audit because it could not be attached to one intent."""

    event: PaymentEvent
    reason: UnresolvedReason
    candidates: tuple[str, ...]
    recorded_at: datetime


@dataclass(slots=True, frozen=True)
class EventApplication:
    """Result of folding one event into payment state."""

    outcome: EventOutcome
    intent_id: str | None = None
    transition: StatusTransition | None = None


@dataclass(slots=True, frozen=True)
class EventAck:
    """Acknowledgement returned to the rail that delivered an event."""

    status_code: int
    body: dict[str, Any]


@dataclass(slots=True, frozen=True)
class SubscriptionFilter:
    contract_address: str | None = None
    to_address: str | None = None
    addresses: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class SubscriptionSpec:
    """Input required to register a chain-activity subscription."""

    event_type: SubscriptionEventType
    notification_uri: str
    filter: SubscriptionFilter
    network_id: str | None = None
    signature_header: str | None = None


@dataclass(slots=True, frozen=True)
class WebhookSubscription:
    subscription_id: str
    network_id: str
    event_type: SubscriptionEventType
    notification_uri: str
    filter: SubscriptionFilter
