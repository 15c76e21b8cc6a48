from __future__ import annotations

from typing import Any, Protocol

import structlog

from .models import PaymentIntent, StatusTransition


class PaymentNotifier(Protocol):
    """Abstraction responsible for surfacing payment status changes."""

    async def notify(
        self,
        intent: PaymentIntent,
        transition: StatusTransition,
        context: dict[str, Any],
    ) -> None:
        """Dispatch a notification (email, chat message, webhook, etc.)"""


class LoggingPaymentNotifier:
    """Default notifier that logs status changes in lieu of an external integration."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    async def notify(
        self,
        intent: PaymentIntent,
        transition: StatusTransition,
        context: dict[str, Any],
    ) -> None:
        self._logger.info(
            "payment_status_changed",
            intent_id=intent.intent_id,
            rail=transition.rail.value,
            previous=transition.previous.value,
            status=transition.current.value,
            event_id=transition.event_id,
            is_demo=intent.is_demo,
            context=context,
        )
