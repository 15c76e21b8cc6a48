from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from .enums import EventKind, EventOutcome, PaymentStatus, Rail, UnresolvedReason
from .exceptions import PaymentNotFoundError, PaymentRequestError
from .models import (
    EventApplication,
    PaymentEvent,
    PaymentIntent,
    StatusTransition,
    UnresolvedEvent,
)
from .notifications import LoggingPaymentNotifier, PaymentNotifier
from .repository import PaymentRepository

_MAIN_LINE_RANK: dict[PaymentStatus, int] = {
    PaymentStatus.CREATED: 0,
    PaymentStatus.PENDING: 1,
    PaymentStatus.DELAYED: 1,
    PaymentStatus.CONFIRMED: 2,
    PaymentStatus.RESOLVED: 3,
}
_INTERRUPTIBLE = frozenset(
    {PaymentStatus.CREATED, PaymentStatus.PENDING, PaymentStatus.DELAYED}
)
_RESCUE_TARGETS = frozenset({PaymentStatus.CONFIRMED, PaymentStatus.RESOLVED})

FAILURE_RESCUED = "failure_rescued"


def plan_transition(
    current: PaymentStatus, target: PaymentStatus
) -> tuple[PaymentStatus | None, str | None]:
    """Return the status to move to (``None`` for no-op) and any anomaly tag."""

    if current is PaymentStatus.RESOLVED or current is target:
        return None, None
    if current is PaymentStatus.FAILED:
        if target in _RESCUE_TARGETS:
            return target, FAILURE_RESCUED
        return None, None
    if target in {PaymentStatus.FAILED, PaymentStatus.DELAYED}:
        return (target, None) if current in _INTERRUPTIBLE else (None, None)
    if current is PaymentStatus.DELAYED and target is PaymentStatus.PENDING:
        return target, None
    if _MAIN_LINE_RANK[target] > _MAIN_LINE_RANK[current]:
        return target, None
    return None, None


class PaymentStatusMachine:
    """Folds canonical events into intent status at most once per event."""

    def __init__(
        self,
        *,
        repository: PaymentRepository,
        notifier: PaymentNotifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._notifier = notifier or LoggingPaymentNotifier()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._intent_locks: dict[str, asyncio.Lock] = {}
        self._logger = structlog.get_logger(__name__)

    async def apply(self, event: PaymentEvent) -> EventApplication:
        if not await self._repository.mark_seen(event.rail, event.event_id):
            self._logger.info(
                "payment_event_duplicate",
                rail=event.rail.value,
                event_id=event.event_id,
            )
            return EventApplication(outcome=EventOutcome.DUPLICATE)

        self._repository.record_event(event)
        if event.kind is EventKind.ACTIVITY_OBSERVED:
            self._logger.info(
                "payment_activity_observed",
                rail=event.rail.value,
                event_id=event.event_id,
            )
            return EventApplication(outcome=EventOutcome.RECORDED)

        intent = self._resolve_intent(event)
        if intent is None:
            return EventApplication(outcome=EventOutcome.UNRESOLVED)
        return await self._transition(
            intent,
            PaymentStatus(event.kind.value),
            event_id=event.event_id,
            rail=event.rail,
            context={
                "source": "webhook",
                "observed_at": event.observed_at.isoformat(),
            },
        )

    async def simulate(self, intent_id: str, kind: EventKind) -> EventApplication:
        """Drive a demo intent locally, as if its rail had reported ``kind``."""

        intent = self._repository.get_intent(intent_id)
        if intent is None:
            raise PaymentNotFoundError(f"Payment intent '{intent_id}' not found")
        if not intent.is_demo:
            raise PaymentRequestError("Only demo intents can be simulated")
        if kind is EventKind.ACTIVITY_OBSERVED:
            raise PaymentRequestError("Simulated events must carry a payment status")
        return await self._transition(
            intent,
            PaymentStatus(kind.value),
            event_id=f"simulated_{uuid.uuid4().hex}",
            rail=intent.rail,
            context={"source": "simulation"},
        )

    def _resolve_intent(self, event: PaymentEvent) -> PaymentIntent | None:
        ref = event.intent_ref
        candidates: list[PaymentIntent] = []
        if ref is not None and ref.intent_id is not None:
            intent = self._repository.find_by_reference(ref.intent_id)
            if intent is not None and intent.is_demo:
                self._unresolved(event, UnresolvedReason.DEMO_INTENT, [intent])
                return None
            candidates = [intent] if intent is not None else []
        elif ref is not None:
            candidates = self._repository.find_open_by_correlation(
                ref, observed_at=event.observed_at
            )

        if len(candidates) == 1:
            return candidates[0]
        reason = UnresolvedReason.AMBIGUOUS if candidates else UnresolvedReason.NO_MATCH
        self._unresolved(event, reason, candidates)
        return None

    def _unresolved(
        self,
        event: PaymentEvent,
        reason: UnresolvedReason,
        candidates: list[PaymentIntent],
    ) -> None:
        candidate_ids = tuple(intent.intent_id for intent in candidates)
        self._repository.record_unresolved(
            UnresolvedEvent(
                event=event,
                reason=reason,
                candidates=candidate_ids,
                recorded_at=self._clock(),
            )
        )
        self._logger.warning(
            "payment_event_unresolved",
            rail=event.rail.value,
            event_id=event.event_id,
            kind=event.kind.value,
            intent_ref=str(event.intent_ref) if event.intent_ref else None,
            reason=reason.value,
            candidates=list(candidate_ids),
        )

    async def _transition(
        self,
        intent: PaymentIntent,
        target: PaymentStatus,
        *,
        event_id: str,
        rail: Rail,
        context: dict[str, str],
    ) -> EventApplication:
        lock = self._intent_locks.setdefault(intent.intent_id, asyncio.Lock())
        async with lock:
            previous = intent.status
            next_status, anomaly = plan_transition(previous, target)
            if next_status is None:
                self._logger.info(
                    "payment_event_ignored",
                    intent_id=intent.intent_id,
                    event_id=event_id,
                    status=previous.value,
                    requested=target.value,
                )
                return EventApplication(
                    outcome=EventOutcome.UNCHANGED, intent_id=intent.intent_id
                )

            now = self._clock()
            intent.status = next_status
            intent.updated_at = now
            transition = StatusTransition(
                intent_id=intent.intent_id,
                previous=previous,
                current=next_status,
                event_id=event_id,
                rail=rail,
                at=now,
                anomaly=anomaly,
            )
            self._repository.record_transition(transition)

        if anomaly == FAILURE_RESCUED:
            self._logger.warning(
                "payment_failure_rescued",
                intent_id=intent.intent_id,
                event_id=event_id,
                status=next_status.value,
            )
        await self._notifier.notify(intent, transition, dict(context))
        return EventApplication(
            outcome=EventOutcome.APPLIED,
            intent_id=intent.intent_id,
            transition=transition,
        )
