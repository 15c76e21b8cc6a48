from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest
from conftest import MERCHANT_ADDRESS

from railpay.core.constants import USDC_BASE_CONTRACT
from railpay.payments.enums import EventKind, Rail
from railpay.payments.exceptions import NormalizationError, UnknownEventKindError
from railpay.payments.models import IntentRef
from railpay.payments.normalizer import EventNormalizer

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def normalizer() -> EventNormalizer:
    return EventNormalizer(
        merchant_address=MERCHANT_ADDRESS,
        token_contract_address=USDC_BASE_CONTRACT,
        clock=lambda: FIXED_NOW,
    )


def _charge_event(event_type: str, **data: Any) -> dict[str, Any]:
    return {
        "event": {
            "id": "evt_1",
            "type": event_type,
            "created_at": "2026-03-01T11:59:00Z",
            "data": {"id": "chg_1", "code": "ABCD", **data},
        }
    }


def _transfer(**data: Any) -> dict[str, Any]:
    body = {
        "to_address": MERCHANT_ADDRESS.lower(),
        "from_address": "0x1111111111111111111111111111111111111111",
        "amount": "59000000",
        "decimals": 6,
        "contract_address": USDC_BASE_CONTRACT,
        "transaction_hash": "0xabc",
        "log_index": 3,
        "block_number": 123,
    }
    body.update(data)
    return {"type": "erc20_transfer", "id": "cdp_evt_1", "data": body}


@pytest.mark.parametrize(
    ("event_type", "kind"),
    [
        ("charge:created", EventKind.CREATED),
        ("charge:pending", EventKind.PENDING),
        ("charge:confirmed", EventKind.CONFIRMED),
        ("charge:delayed", EventKind.DELAYED),
        ("charge:failed", EventKind.FAILED),
        ("charge:resolved", EventKind.RESOLVED),
    ],
)
def test_charge_events_map_to_canonical_kinds(
    normalizer: EventNormalizer, event_type: str, kind: EventKind
) -> None:
    event = normalizer.normalize(Rail.HOSTED_CHARGE, _charge_event(event_type))

    assert event is not None
    assert event.kind is kind
    assert event.event_id == "evt_1"
    assert event.intent_ref == IntentRef.exact("chg_1")
    assert event.observed_at == datetime(2026, 3, 1, 11, 59, tzinfo=UTC)


def test_echoed_intent_ref_wins_over_charge_id(normalizer: EventNormalizer) -> None:
    payload = _charge_event("charge:confirmed", metadata={"intent_ref": "chg_original"})

    event = normalizer.normalize(Rail.HOSTED_CHARGE, payload)

    assert event is not None
    assert event.intent_ref == IntentRef.exact("chg_original")


def test_bare_charge_event_is_accepted(normalizer: EventNormalizer) -> None:
    payload = _charge_event("charge:pending")["event"]

    event = normalizer.normalize(Rail.HOSTED_CHARGE, payload)

    assert event is not None
    assert event.kind is EventKind.PENDING


def test_unknown_charge_type_is_reported(normalizer: EventNormalizer) -> None:
    with pytest.raises(UnknownEventKindError) as excinfo:
        normalizer.normalize(Rail.HOSTED_CHARGE, _charge_event("charge:refunded"))

    assert excinfo.value.event_type == "charge:refunded"


def test_charge_event_without_id_cannot_be_normalized(
    normalizer: EventNormalizer,
) -> None:
    payload = _charge_event("charge:confirmed")
    del payload["event"]["id"]

    with pytest.raises(NormalizationError):
        normalizer.normalize(Rail.HOSTED_CHARGE, payload)


def test_transfer_to_merchant_becomes_confirmed_with_derived_ref(
    normalizer: EventNormalizer,
) -> None:
    event = normalizer.normalize(Rail.CHAIN_TRANSFER, _transfer())

    assert event is not None
    assert event.kind is EventKind.CONFIRMED
    assert event.event_id == "cdp_evt_1"
    assert event.intent_ref == IntentRef.derived(MERCHANT_ADDRESS, Decimal("59"))
    assert event.observed_at == FIXED_NOW


def test_decimal_amounts_are_not_rescaled(normalizer: EventNormalizer) -> None:
    event = normalizer.normalize(Rail.CHAIN_TRANSFER, _transfer(amount="59.00"))

    assert event is not None
    assert event.intent_ref is not None
    assert event.intent_ref.amount == Decimal("59")


def test_transfer_to_another_address_is_dropped(normalizer: EventNormalizer) -> None:
    payload = _transfer(to_address="0x2222222222222222222222222222222222222222")

    assert normalizer.normalize(Rail.CHAIN_TRANSFER, payload) is None


def test_transfer_of_another_token_is_dropped(normalizer: EventNormalizer) -> None:
    payload = _transfer(contract_address="0x3333333333333333333333333333333333333333")

    assert normalizer.normalize(Rail.CHAIN_TRANSFER, payload) is None


def test_transfer_event_id_falls_back_to_transaction_log(
    normalizer: EventNormalizer,
) -> None:
    payload = _transfer()
    del payload["id"]

    event = normalizer.normalize(Rail.CHAIN_TRANSFER, payload)

    assert event is not None
    assert event.event_id == "0xabc:3"


def test_wallet_activity_is_observed_only(normalizer: EventNormalizer) -> None:
    payload = {
        "type": "wallet_activity",
        "id": "act_1",
        "data": {"address": MERCHANT_ADDRESS, "transaction_hash": "0xdef"},
    }

    event = normalizer.normalize(Rail.CHAIN_TRANSFER, payload)

    assert event is not None
    assert event.kind is EventKind.ACTIVITY_OBSERVED
    assert event.intent_ref is None


def test_unknown_chain_event_type_is_reported(normalizer: EventNormalizer) -> None:
    with pytest.raises(UnknownEventKindError):
        normalizer.normalize(Rail.CHAIN_TRANSFER, {"type": "nft_mint", "id": "x"})


def test_transfer_without_amount_cannot_be_normalized(
    normalizer: EventNormalizer,
) -> None:
    payload = _transfer()
    del payload["data"]["amount"]

    with pytest.raises(NormalizationError):
        normalizer.normalize(Rail.CHAIN_TRANSFER, payload)
