"""Payment rail orchestration and webhook reconciliation."""

from __future__ import annotations

from .enums import EventKind, PaymentMethod, PaymentStatus, Rail
from .exceptions import PaymentError
from .models import PaymentEvent, PaymentIntent
from .service import PaymentOrchestrator, PaymentRequest

__all__ = [
    "EventKind",
    "PaymentError",
    "PaymentEvent",
    "PaymentIntent",
    "PaymentMethod",
    "PaymentOrchestrator",
    "PaymentRequest",
    "PaymentStatus",
    "Rail",
]
