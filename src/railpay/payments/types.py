from __future__ import annotations

from typing import Literal, NotRequired, TypedDict

__all__ = [
    "HostedChargeLocalPrice",
    "HostedChargeMetadata",
    "HostedChargePayload",
    "OnrampPaymentAmount",
    "OnrampDestinationWallet",
    "OnrampOrderPayload",
    "OnrampQuotePayload",
    "OnrampPaymentMethod",
    "CdpEventFilter",
    "CdpEventTypeFilter",
    "CdpWebhookPayload",
    "CdpWebhookUpdatePayload",
]


class HostedChargeLocalPrice(TypedDict):
    amount: str
    currency: str


class HostedChargeMetadata(TypedDict, total=False):
    network: str
    destination_address: str
    purchase_currency: str
    created_at: str
    integration: str
    intent_ref: str
    payment_method: str


class HostedChargePayload(TypedDict):
    name: str
    description: str
    local_price: HostedChargeLocalPrice
    pricing_type: Literal["fixed_price"]
    redirect_url: str
    cancel_url: str
    metadata: HostedChargeMetadata


OnrampPaymentMethod = Literal["GUEST_CHECKOUT_APPLE_PAY", "GUEST_CHECKOUT_DEBIT_CARD"]


class OnrampPaymentAmount(TypedDict):
    amount: str
    currency: str


class OnrampDestinationWallet(TypedDict):
    address: str
    blockchains: list[str]


class OnrampOrderPayload(TypedDict):
    paymentAmount: OnrampPaymentAmount
    purchaseNetwork: str
    purchaseAsset: str
    destinationWallet: OnrampDestinationWallet
    paymentMethod: OnrampPaymentMethod
    guestCheckout: bool


class OnrampQuotePayload(TypedDict):
    paymentAmount: OnrampPaymentAmount
    purchaseNetwork: str
    purchaseAsset: str
    paymentMethod: OnrampPaymentMethod


class CdpEventFilter(TypedDict, total=False):
    contract_address: str
    to_address: str


class CdpEventTypeFilter(TypedDict):
    addresses: list[str]
    wallet_id: str


class CdpWebhookPayload(TypedDict):
    network_id: str
    event_type: str
    notification_uri: str
    signature_header: str
    event_filters: NotRequired[list[CdpEventFilter]]
    event_type_filter: NotRequired[CdpEventTypeFilter]


class CdpWebhookUpdatePayload(TypedDict):
    notification_uri: str
