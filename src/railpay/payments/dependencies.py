from __future__ import annotations

from datetime import timedelta

import httpx
import structlog
from fastapi import HTTPException, Request, status
from pydantic import SecretStr

from railpay.core.config import Settings
from railpay.core.constants import BASE_MAINNET_CHAIN_ID, USDC_DECIMALS
from railpay.payments.enums import Rail
from railpay.payments.fallback import DemoFallbackPolicy
from railpay.payments.normalizer import EventNormalizer
from railpay.payments.notifications import LoggingPaymentNotifier, PaymentNotifier
from railpay.payments.rails import (
    CdpCredentialsError,
    CdpJwtSigner,
    ChainTransferMonitorClient,
    HostedChargeClient,
    OnrampClient,
    RailTransport,
)
from railpay.payments.repository import InMemoryPaymentRepository, PaymentRepository
from railpay.payments.service import PaymentOrchestrator
from railpay.payments.state_machine import PaymentStatusMachine
from railpay.payments.verification import WebhookVerifier

logger = structlog.get_logger(__name__)


def build_cdp_signer(settings: Settings) -> CdpJwtSigner | None:
    """Return a JWT signer when real developer-platform credentials are present."""

    key_id = _secret(settings, settings.cdp.api_key_id)
    private_key = _secret(settings, settings.cdp.private_key)
    if key_id is None or private_key is None:
        return None
    try:
        return CdpJwtSigner(
            key_id=key_id,
            private_key=private_key,
            ttl_seconds=settings.cdp.jwt_ttl_seconds,
        )
    except CdpCredentialsError as exc:
        logger.warning("cdp_credentials_invalid", error=str(exc))
        return None


def _secret(settings: Settings, value: SecretStr | None) -> str | None:
    if value is None or not settings.rails.has_credential(value):
        return None
    return value.get_secret_value()


def build_orchestrator(
    settings: Settings,
    http_client: httpx.AsyncClient,
    *,
    notifier: PaymentNotifier | None = None,
    repository: PaymentRepository | None = None,
) -> PaymentOrchestrator:
    """Wire rail clients and reconciliation components into one orchestrator."""

    rails_settings = settings.rails
    intent_ttl = timedelta(seconds=rails_settings.intent_ttl_seconds)
    timeout = rails_settings.timeout_seconds
    signer = build_cdp_signer(settings)

    def transport(rail: Rail) -> RailTransport:
        return RailTransport(
            http_client=http_client, rail=rail, timeout_seconds=timeout
        )

    hosted_charge = HostedChargeClient(
        transport=transport(Rail.HOSTED_CHARGE),
        api_key=_secret(settings, settings.commerce.api_key),
        api_url=settings.commerce.api_url,
        api_version=settings.commerce.api_version,
        frontend_url=settings.merchant.frontend_url,
        intent_ttl=intent_ttl,
    )
    onramp = OnrampClient(
        transport=transport(Rail.ONRAMP),
        signer=signer,
        api_url=settings.onramp.api_url,
        api_version=settings.onramp.api_version,
        intent_ttl=intent_ttl,
    )
    chain_monitor = ChainTransferMonitorClient(
        transport=transport(Rail.CHAIN_TRANSFER),
        signer=signer,
        api_url=settings.cdp.api_url,
        network_id=settings.cdp.network_id,
        chain_id=BASE_MAINNET_CHAIN_ID,
        token_contract_address=settings.cdp.token_contract_address,
        token_decimals=USDC_DECIMALS,
        signature_header=settings.cdp.signature_header,
        intent_ttl=intent_ttl,
    )

    repository = repository or InMemoryPaymentRepository()
    return PaymentOrchestrator(
        settings=settings,
        rails={
            Rail.HOSTED_CHARGE: hosted_charge,
            Rail.ONRAMP: onramp,
            Rail.CHAIN_TRANSFER: chain_monitor,
        },
        chain_monitor=chain_monitor,
        onramp=onramp,
        fallback=DemoFallbackPolicy(
            frontend_url=settings.merchant.frontend_url,
            intent_ttl=intent_ttl,
            # Leave headroom over the transport bound so its error wins.
            timeout_seconds=timeout + 1,
        ),
        verifier=WebhookVerifier(
            hosted_charge_secret=_secret(settings, settings.commerce.webhook_secret),
            chain_transfer_secret=_secret(settings, settings.cdp.webhook_secret),
        ),
        normalizer=EventNormalizer(
            merchant_address=settings.merchant.destination_address,
            token_contract_address=settings.cdp.token_contract_address,
        ),
        state_machine=PaymentStatusMachine(
            repository=repository,
            notifier=notifier or LoggingPaymentNotifier(),
        ),
        repository=repository,
    )


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment orchestrator is not initialised",
        )
    return orchestrator
