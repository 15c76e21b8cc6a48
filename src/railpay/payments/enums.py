from __future__ import annotations

from enum import StrEnum


class Rail(StrEnum):
    """Payment rail an intent or event belongs to."""

    HOSTED_CHARGE = "hosted_charge"
    ONRAMP = "onramp"
    CHAIN_TRANSFER = "chain_transfer"


class PaymentStatus(StrEnum):
    """Life cycle states for a payment intent."""

    CREATED = "created"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELAYED = "delayed"
    FAILED = "failed"
    RESOLVED = "resolved"


class EventKind(StrEnum):
    """Canonical kind of an asynchronous rail notification."""

    CREATED = "created"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELAYED = "delayed"
    FAILED = "failed"
    RESOLVED = "resolved"
    ACTIVITY_OBSERVED = "activity_observed"


class RailErrorKind(StrEnum):
    """Failure categories a rail client can report."""

    UNREACHABLE = "unreachable"
    UNAUTHORIZED = "unauthorized"
    INVALID_REQUEST = "invalid_request"
    RAIL_REJECTED = "rail_rejected"


class SubscriptionEventType(StrEnum):
    """Event feeds offered by the chain-activity monitor."""

    ERC20_TRANSFER = "erc20_transfer"
    WALLET_ACTIVITY = "wallet_activity"


class PaymentMethod(StrEnum):
    """Payment method a customer picks at checkout."""

    CRYPTO = "crypto"
    HOSTED = "hosted"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"
    DEBIT_CARD = "debit_card"
    CARD = "card"
    WALLET = "wallet"
    TRANSFER = "transfer"
    ONCHAIN = "onchain"

    @property
    def rail(self) -> Rail:
        if self in {PaymentMethod.CRYPTO, PaymentMethod.HOSTED}:
            return Rail.HOSTED_CHARGE
        if self in {
            PaymentMethod.WALLET,
            PaymentMethod.TRANSFER,
            PaymentMethod.ONCHAIN,
        }:
            return Rail.CHAIN_TRANSFER
        return Rail.ONRAMP


class UnresolvedReason(StrEnum):
    """Why an event could not be attached to an intent."""

    NO_MATCH = "no_match"
    AMBIGUOUS = "ambiguous"
    DEMO_INTENT = "demo_intent"


class EventOutcome(StrEnum):
    """What happened to an inbound event after it was acknowledged."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"
    UNKNOWN_KIND = "unknown_kind"
    UNRESOLVED = "unresolved"
    RECORDED = "recorded"
