from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog

from .enums import EventKind, Rail, SubscriptionEventType
from .exceptions import NormalizationError, UnknownEventKindError, UnsupportedRailError
from .models import IntentRef, PaymentEvent, parse_amount
from .rails.base import parse_timestamp

_CHARGE_EVENT_KINDS: dict[str, EventKind] = {
    "charge:created": EventKind.CREATED,
    "charge:pending": EventKind.PENDING,
    "charge:confirmed": EventKind.CONFIRMED,
    "charge:delayed": EventKind.DELAYED,
    "charge:failed": EventKind.FAILED,
    "charge:resolved": EventKind.RESOLVED,
}


class EventNormalizer:
    """Maps verified rail payloads onto canonical ``PaymentEvent`` values."""

    def __init__(
        self,
        *,
        merchant_address: str,
        token_contract_address: str | None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._merchant_address = merchant_address.strip().lower()
        self._token_contract = (
            token_contract_address.strip().lower() if token_contract_address else None
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._logger = structlog.get_logger(__name__)

    def normalize(self, rail: Rail, payload: Mapping[str, Any]) -> PaymentEvent | None:
        """Return the canonical event, or ``None`` when the payload is not ours.

        Raises :class:`UnknownEventKindError` for event types without a
        canonical counterpart and :class:`NormalizationError` for payloads
        missing the fields needed to identify the event.
        """

        if rail is Rail.HOSTED_CHARGE:
            return self._normalize_charge(payload)
        if rail is Rail.CHAIN_TRANSFER:
            return self._normalize_chain(payload)
        raise UnsupportedRailError(f"{rail.value} does not deliver webhooks")

    def _normalize_charge(self, payload: Mapping[str, Any]) -> PaymentEvent:
        envelope = payload.get("event")
        event = envelope if isinstance(envelope, Mapping) else payload

        event_type = event.get("type")
        if not isinstance(event_type, str):
            raise NormalizationError("Charge event is missing its type")
        kind = _CHARGE_EVENT_KINDS.get(event_type.strip().lower())
        if kind is None:
            raise UnknownEventKindError(event_type)

        event_id = _string_id(event.get("id"))
        if event_id is None:
            raise NormalizationError("Charge event is missing its id")

        charge = event.get("data")
        charge = charge if isinstance(charge, Mapping) else {}
        metadata = charge.get("metadata")
        echoed_ref = (
            metadata.get("intent_ref") if isinstance(metadata, Mapping) else None
        )
        intent_id = _string_id(echoed_ref) or _string_id(charge.get("id"))

        return PaymentEvent(
            event_id=event_id,
            rail=Rail.HOSTED_CHARGE,
            kind=kind,
            intent_ref=IntentRef.exact(intent_id) if intent_id else None,
            observed_at=parse_timestamp(event.get("created_at")) or self._clock(),
            raw=dict(payload),
        )

    def _normalize_chain(self, payload: Mapping[str, Any]) -> PaymentEvent | None:
        raw_type = payload.get("type") or payload.get("event_type")
        if not isinstance(raw_type, str):
            raise NormalizationError("Chain event is missing its type")
        try:
            event_type = SubscriptionEventType(raw_type.strip().lower())
        except ValueError as exc:
            raise UnknownEventKindError(raw_type) from exc

        data = payload.get("data")
        data = data if isinstance(data, Mapping) else payload
        event_id = _string_id(payload.get("id")) or _chain_event_id(data)
        if event_id is None:
            raise NormalizationError("Chain event has neither an id nor a tx hash")
        observed_at = (
            parse_timestamp(payload.get("created_at") or data.get("block_time"))
            or self._clock()
        )

        if event_type is SubscriptionEventType.WALLET_ACTIVITY:
            return PaymentEvent(
                event_id=event_id,
                rail=Rail.CHAIN_TRANSFER,
                kind=EventKind.ACTIVITY_OBSERVED,
                intent_ref=None,
                observed_at=observed_at,
                raw=dict(payload),
            )

        to_address = data.get("to_address")
        if not isinstance(to_address, str) or (
            to_address.strip().lower() != self._merchant_address
        ):
            self._logger.info(
                "chain_transfer_ignored",
                event_id=event_id,
                reason="recipient_mismatch",
                to_address=to_address,
            )
            return None
        contract = data.get("contract_address")
        if (
            self._token_contract is not None
            and isinstance(contract, str)
            and contract.strip().lower() != self._token_contract
        ):
            self._logger.info(
                "chain_transfer_ignored",
                event_id=event_id,
                reason="contract_mismatch",
                contract_address=contract,
            )
            return None

        amount = _transfer_amount(data.get("amount"), data.get("decimals"))
        return PaymentEvent(
            event_id=event_id,
            rail=Rail.CHAIN_TRANSFER,
            kind=EventKind.CONFIRMED,
            intent_ref=IntentRef.derived(to_address, amount),
            observed_at=observed_at,
            raw=dict(payload),
        )


def _string_id(value: object) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _chain_event_id(data: Mapping[str, Any]) -> str | None:
    tx_hash = _string_id(data.get("transaction_hash"))
    if tx_hash is None:
        return None
    log_index = _string_id(data.get("log_index"))
    return f"{tx_hash}:{log_index}" if log_index is not None else tx_hash


def _transfer_amount(raw_amount: object, raw_decimals: object) -> Decimal:
    """Return the token amount, scaling integer base units by ``decimals``."""

    if raw_amount is None:
        raise NormalizationError("Transfer event is missing its amount")
    try:
        amount = parse_amount(raw_amount)
    except ValueError as exc:
        raise NormalizationError(str(exc)) from exc

    if raw_decimals is None or "." in str(raw_amount):
        return amount
    try:
        decimals = int(str(raw_decimals))
    except ValueError as exc:
        raise NormalizationError(f"Invalid decimals: {raw_decimals!r}") from exc
    return amount.scaleb(-decimals)
