from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import ORJSONResponse

from railpay.api.schemas.payments import WebhookAck
from railpay.payments.dependencies import get_orchestrator
from railpay.payments.enums import Rail
from railpay.payments.exceptions import UnsupportedRailError
from railpay.payments.service import PaymentOrchestrator

router = APIRouter(prefix="/api", tags=["webhooks"])

logger = structlog.get_logger(__name__)


async def _handle(
    rail: Rail, request: Request, orchestrator: PaymentOrchestrator
) -> ORJSONResponse:
    raw_body = await request.body()
    try:
        ack = await orchestrator.handle_event(rail, raw_body, request.headers)
    except UnsupportedRailError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception:
        logger.exception("webhook_processing_failed", rail=rail.value)
        raise

    logger.info(
        "webhook_processed",
        rail=rail.value,
        status_code=ack.status_code,
        outcome=ack.body.get("outcome"),
    )
    return ORJSONResponse(status_code=ack.status_code, content=ack.body)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Handle hosted-checkout charge webhooks",
)
async def handle_hosted_charge_webhook(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    return await _handle(Rail.HOSTED_CHARGE, request, orchestrator)


@router.post(
    "/cdp/usdc-payment",
    response_model=WebhookAck,
    summary="Handle USDC transfer notifications from the chain monitor",
)
async def handle_usdc_payment_webhook(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    return await _handle(Rail.CHAIN_TRANSFER, request, orchestrator)


@router.post(
    "/cdp/address-activity",
    response_model=WebhookAck,
    summary="Handle address activity notifications from the chain monitor",
)
async def handle_address_activity_webhook(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    return await _handle(Rail.CHAIN_TRANSFER, request, orchestrator)
