"""Rail clients that create payment intents on external payment services."""

from __future__ import annotations

from .base import RailClient, RailTransport, SubscriptionRailClient
from .cdp_auth import CdpCredentialsError, CdpJwtSigner
from .chain_monitor import ChainTransferMonitorClient
from .hosted_charge import HostedChargeClient, map_timeline_status
from .onramp import OnrampClient, map_order_status, onramp_payment_method

__all__ = [
    "CdpCredentialsError",
    "CdpJwtSigner",
    "ChainTransferMonitorClient",
    "HostedChargeClient",
    "OnrampClient",
    "RailClient",
    "RailTransport",
    "SubscriptionRailClient",
    "map_order_status",
    "map_timeline_status",
    "onramp_payment_method",
]
