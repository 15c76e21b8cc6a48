from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

import structlog

from .enums import Rail
from .exceptions import (
    InvalidSignatureError,
    MalformedPayloadError,
    UnsupportedRailError,
)


class WebhookVerifier:
    """Gatekeeper for inbound rail notifications.

    Signatures are HMAC-SHA256 hex digests over the exact raw request body.
    Hosted-charge notifications always need a signature and a configured
    secret. Chain-activity notifications are checked only when a secret is
    configured. Either way, only a JSON object is ever handed back.
    """

    def __init__(
        self,
        *,
        hosted_charge_secret: str | None,
        chain_transfer_secret: str | None,
    ) -> None:
        self._hosted_charge_secret = hosted_charge_secret
        self._chain_transfer_secret = chain_transfer_secret
        self._logger = structlog.get_logger(__name__)

    def verify(
        self, rail: Rail, raw_body: bytes, signature_header: str | None
    ) -> dict[str, Any]:
        if rail is Rail.HOSTED_CHARGE:
            if not self._hosted_charge_secret:
                self._reject(rail, "secret_not_configured")
                raise InvalidSignatureError("Webhook secret is not configured")
            self._check_signature(
                rail, self._hosted_charge_secret, raw_body, signature_header
            )
        elif rail is Rail.CHAIN_TRANSFER:
            if self._chain_transfer_secret:
                self._check_signature(
                    rail, self._chain_transfer_secret, raw_body, signature_header
                )
        else:
            raise UnsupportedRailError(f"{rail.value} does not deliver webhooks")

        return self._parse(rail, raw_body)

    def _check_signature(
        self,
        rail: Rail,
        secret: str,
        raw_body: bytes,
        signature_header: str | None,
    ) -> None:
        if not signature_header:
            self._reject(rail, "signature_missing")
            raise InvalidSignatureError("Missing webhook signature header")

        provided = signature_header.strip()
        algorithm, separator, digest = provided.partition("=")
        if separator and algorithm.lower() == "sha256":
            provided = digest.strip()

        expected = sign_payload(secret, raw_body).encode("ascii")
        received = provided.lower().encode("utf-8", "surrogateescape")
        if not hmac.compare_digest(expected, received):
            self._reject(rail, "signature_mismatch")
            raise InvalidSignatureError("Webhook signature mismatch")

    def _parse(self, rail: Rail, raw_body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as exc:
            self._reject(rail, "payload_not_json")
            raise MalformedPayloadError("Webhook body is not valid JSON") from exc
        if not isinstance(payload, dict):
            self._reject(rail, "payload_not_object")
            raise MalformedPayloadError("Webhook body must be a JSON object")
        return payload

    def _reject(self, rail: Rail, reason: str) -> None:
        self._logger.warning(
            "webhook_verification_failed", rail=rail.value, reason=reason
        )


def sign_payload(secret: str, raw_body: bytes) -> str:
    """Return the hex signature a rail would attach to ``raw_body``."""

    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
