from __future__ import annotations


class PaymentError(RuntimeError):
    """Base class for payment domain errors."""


class PaymentConfigurationError(PaymentError):
    """Raised when a rail integration is not properly configured."""


class PaymentRequestError(PaymentError):
    """Raised when a create-payment request is missing required fields."""


class PaymentPlanNotFoundError(PaymentError):
    """Raised when a requested subscription plan is unknown."""


class PaymentNotFoundError(PaymentError):
    """Raised when a referenced payment intent does not exist."""


class UnsupportedRailError(PaymentError):
    """Raised when an operation is requested on a rail that does not offer it."""


class WebhookVerificationError(PaymentError):
    """Raised when an incoming webhook cannot be trusted."""


class InvalidSignatureError(WebhookVerificationError):
    """Raised when the webhook signature is missing or does not match."""


class MalformedPayloadError(WebhookVerificationError):
    """Raised when the webhook body is not a structured JSON object."""


class NormalizationError(PaymentError):
    """Raised when a verified payload cannot be mapped to a canonical event."""


class UnknownEventKindError(NormalizationError):
    """Raised when a rail reports an event type with no canonical counterpart."""

    def __init__(self, event_type: object) -> None:
        super().__init__(f"Unknown event type: {event_type!r}")
        self.event_type = event_type
