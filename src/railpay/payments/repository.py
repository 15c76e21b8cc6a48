from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from .enums import PaymentStatus, Rail
from .models import (
    IntentRef,
    PaymentEvent,
    PaymentIntent,
    StatusTransition,
    UnresolvedEvent,
)

_SETTLED_STATUSES = frozenset({PaymentStatus.CONFIRMED, PaymentStatus.RESOLVED})


class PaymentRepository(Protocol):
    """Storage for intents and the audit trail of the events applied to them."""

    def add_intent(self, intent: PaymentIntent) -> None:
        ...

    def get_intent(self, intent_id: str) -> PaymentIntent | None:
        ...

    def find_by_reference(self, reference: str) -> PaymentIntent | None:
        ...

    def find_open_by_correlation(
        self, ref: IntentRef, *, observed_at: datetime
    ) -> list[PaymentIntent]:
        ...

    async def mark_seen(self, rail: Rail, event_id: str) -> bool:
        ...

    def record_event(self, event: PaymentEvent) -> None:
        ...

    def record_transition(self, transition: StatusTransition) -> None:
        ...

    def record_unresolved(self, unresolved: UnresolvedEvent) -> None:
        ...

    def list_unresolved(self) -> Sequence[UnresolvedEvent]:
        ...


class InMemoryPaymentRepository:
    """Process-local repository; nothing is evicted for the life of the process."""

    def __init__(self) -> None:
        self._intents: dict[str, PaymentIntent] = {}
        self._seen: set[tuple[Rail, str]] = set()
        self._seen_lock = asyncio.Lock()
        self._events: list[PaymentEvent] = []
        self._transitions: list[StatusTransition] = []
        self._unresolved: list[UnresolvedEvent] = []

    def add_intent(self, intent: PaymentIntent) -> None:
        if intent.intent_id in self._intents:
            raise ValueError(f"Intent '{intent.intent_id}' is already recorded")
        self._intents[intent.intent_id] = intent

    def get_intent(self, intent_id: str) -> PaymentIntent | None:
        return self._intents.get(intent_id)

    def find_by_reference(self, reference: str) -> PaymentIntent | None:
        intent = self._intents.get(reference)
        if intent is not None:
            return intent
        for candidate in self._intents.values():
            if candidate.provider_reference == reference:
                return candidate
        return None

    def find_open_by_correlation(
        self, ref: IntentRef, *, observed_at: datetime
    ) -> list[PaymentIntent]:
        """Return unsettled intents still live at ``observed_at`` that match ``ref``."""

        if ref.address is None or ref.amount is None:
            return []
        return [
            intent
            for intent in self._intents.values()
            if not intent.is_demo
            and intent.status not in _SETTLED_STATUSES
            and intent.expires_at >= observed_at
            and intent.correlation_key.address == ref.address
            and intent.amount.amount == ref.amount
        ]

    async def mark_seen(self, rail: Rail, event_id: str) -> bool:
        """Atomically record ``(rail, event_id)``; ``False`` when already present."""

        key = (rail, event_id)
        async with self._seen_lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def record_event(self, event: PaymentEvent) -> None:
        self._events.append(event)

    def record_transition(self, transition: StatusTransition) -> None:
        self._transitions.append(transition)

    def record_unresolved(self, unresolved: UnresolvedEvent) -> None:
        self._unresolved.append(unresolved)

    def list_unresolved(self) -> Sequence[UnresolvedEvent]:
        return tuple(self._unresolved)

    def list_events(self) -> Sequence[PaymentEvent]:
        return tuple(self._events)

    def transitions_for(self, intent_id: str) -> Sequence[StatusTransition]:
        return tuple(t for t in self._transitions if t.intent_id == intent_id)
