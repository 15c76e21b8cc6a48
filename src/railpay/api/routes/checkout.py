from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from railpay.api.schemas.payments import (
    CheckoutRequest,
    OnrampCheckoutRequest,
    OnrampQuoteRequest,
    PaymentIntentResponse,
)
from railpay.payments.dependencies import get_orchestrator
from railpay.payments.enums import Rail
from railpay.payments.exceptions import PaymentPlanNotFoundError, PaymentRequestError
from railpay.payments.service import PaymentOrchestrator

router = APIRouter(prefix="/api", tags=["checkout"])

logger = structlog.get_logger(__name__)


async def _create(
    orchestrator: PaymentOrchestrator, payload: CheckoutRequest
) -> PaymentIntentResponse:
    try:
        intent = await orchestrator.create_payment(payload.to_domain())
    except PaymentPlanNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PaymentRequestError as exc:
        logger.info("checkout_rejected", error=str(exc))
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return PaymentIntentResponse.from_intent(intent)


@router.post(
    "/checkout",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payment intent (hosted checkout unless a method says otherwise)",
)
async def create_checkout(
    payload: CheckoutRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> PaymentIntentResponse:
    return await _create(orchestrator, payload)


@router.post(
    "/onramp",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a card / Apple Pay / Google Pay onramp order",
)
async def create_onramp_order(
    payload: OnrampCheckoutRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> PaymentIntentResponse:
    if payload.payment_method is None or payload.payment_method.rail is not Rail.ONRAMP:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail="payment_method must be an onramp method (card, apple_pay, ...)",
        )
    return await _create(orchestrator, payload)


@router.post("/onramp/quote", summary="Quote a fiat to USDC onramp purchase")
async def get_onramp_quote(
    payload: OnrampQuoteRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await orchestrator.get_onramp_quote(
        amount=payload.amount,
        currency=payload.currency,
        payment_method=payload.payment_method,
    )


@router.get("/onramp/{order_id}", summary="Fetch the status of an onramp order")
async def get_onramp_order(
    order_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await orchestrator.get_onramp_order(order_id)
