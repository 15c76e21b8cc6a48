from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import ORJSONResponse

from railpay.api.schemas.payments import (
    SetupWebhooksRequest,
    SubscriptionCreateRequest,
    SubscriptionUpdateRequest,
)
from railpay.payments.dependencies import get_orchestrator
from railpay.payments.exceptions import PaymentRequestError
from railpay.payments.service import PaymentOrchestrator

router = APIRouter(prefix="/api", tags=["subscriptions"])


def _envelope(body: dict[str, Any]) -> ORJSONResponse:
    code = status.HTTP_200_OK if body.get("success") else status.HTTP_502_BAD_GATEWAY
    return ORJSONResponse(status_code=code, content=body)


@router.post(
    "/setup-webhooks",
    summary="Register the USDC transfer and address activity subscriptions",
)
async def setup_webhooks(
    payload: SetupWebhooksRequest | None = None,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    base_uri = str(payload.base_uri) if payload and payload.base_uri else None
    try:
        body = await orchestrator.setup_payment_webhooks(base_uri)
    except PaymentRequestError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _envelope(body)


@router.get("/webhooks", summary="List chain-activity subscriptions")
async def list_webhooks(
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    return _envelope(await orchestrator.list_subscriptions())


@router.post("/webhooks", summary="Create a chain-activity subscription")
async def create_webhook(
    payload: SubscriptionCreateRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    body = await orchestrator.create_subscription(
        event_type=payload.event_type,
        notification_uri=str(payload.notification_uri),
        contract_address=payload.contract_address,
        to_address=payload.to_address,
        addresses=payload.addresses,
        network_id=payload.network_id,
    )
    return _envelope(body)


@router.put("/webhooks/{webhook_id}", summary="Point a subscription at a new URI")
async def update_webhook(
    webhook_id: str,
    payload: SubscriptionUpdateRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    body = await orchestrator.update_subscription(
        webhook_id, str(payload.notification_uri)
    )
    return _envelope(body)


@router.delete("/webhooks/{webhook_id}", summary="Delete a subscription")
async def delete_webhook(
    webhook_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ORJSONResponse:
    return _envelope(await orchestrator.delete_subscription(webhook_id))
