from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from railpay.api.schemas.payments import (
    PaymentIntentResponse,
    SimulateEventRequest,
    SimulateEventResponse,
    UnresolvedEventResponse,
)
from railpay.payments.dependencies import get_orchestrator
from railpay.payments.exceptions import PaymentNotFoundError, PaymentRequestError
from railpay.payments.service import PaymentOrchestrator

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get(
    "/diagnostics/unresolved",
    response_model=list[UnresolvedEventResponse],
    summary="Events that could not be matched to exactly one intent",
)
async def list_unresolved_events(
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> list[UnresolvedEventResponse]:
    return [
        UnresolvedEventResponse.from_domain(item)
        for item in orchestrator.list_unresolved_events()
    ]


@router.get(
    "/{intent_id}",
    response_model=PaymentIntentResponse,
    summary="Current status of a payment intent",
)
async def get_payment(
    intent_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> PaymentIntentResponse:
    try:
        intent = orchestrator.get_payment_status(intent_id)
    except PaymentNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PaymentIntentResponse.from_intent(intent)


@router.post(
    "/{intent_id}/simulate",
    response_model=SimulateEventResponse,
    summary="Advance a demo intent as if its rail had reported an event",
)
async def simulate_event(
    intent_id: str,
    payload: SimulateEventRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> SimulateEventResponse:
    try:
        intent, application = await orchestrator.simulate_demo_event(
            intent_id, payload.kind
        )
    except PaymentNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PaymentRequestError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SimulateEventResponse(
        outcome=application.outcome.value,
        payment=PaymentIntentResponse.from_intent(intent),
    )
