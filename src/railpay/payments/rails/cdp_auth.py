from __future__ import annotations

import base64
import binascii
import secrets
import time
from collections.abc import Callable
from urllib.parse import urlsplit

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

__all__ = ["CdpCredentialsError", "CdpJwtSigner"]

PrivateKey = ec.EllipticCurvePrivateKey | ed25519.Ed25519PrivateKey


class CdpCredentialsError(ValueError):
    """Raised when a developer-platform key cannot be loaded."""


class CdpJwtSigner:
    """Issues the short-lived, per-request bearer JWTs developer-platform APIs expect.

    Each token is bound to a single ``"<METHOD> <host><path>"`` pair and
    expires after ``ttl_seconds``. PEM encoded EC keys sign with ES256; raw
    base64 Ed25519 keys sign with EdDSA.
    """

    def __init__(
        self,
        *,
        key_id: str,
        private_key: str,
        ttl_seconds: int = 120,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not key_id:
            raise CdpCredentialsError("key_id must be provided")
        if ttl_seconds <= 0:
            raise CdpCredentialsError("ttl_seconds must be positive")
        self._key_id = key_id
        self._ttl = ttl_seconds
        self._clock = clock
        self._key, self._algorithm = _load_private_key(private_key)

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def sign(self, method: str, url: str) -> str:
        parts = urlsplit(url)
        now = int(self._clock())
        claims = {
            "sub": self._key_id,
            "iss": "cdp",
            "nbf": now,
            "exp": now + self._ttl,
            "uri": f"{method.upper()} {parts.netloc}{parts.path}",
        }
        headers = {"kid": self._key_id, "nonce": secrets.token_hex(16)}
        return jwt.encode(claims, self._key, algorithm=self._algorithm, headers=headers)

    def authorization_header(self, method: str, url: str) -> str:
        return f"Bearer {self.sign(method, url)}"


def _load_private_key(private_key: str) -> tuple[PrivateKey, str]:
    text = private_key.strip().replace("\\n", "\n")
    if not text:
        raise CdpCredentialsError("private_key must be provided")

    if text.startswith("-----BEGIN"):
        try:
            key = serialization.load_pem_private_key(
                text.encode("utf-8"), password=None
            )
        except (ValueError, TypeError) as exc:
            raise CdpCredentialsError(f"Invalid PEM private key: {exc}") from exc
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return key, "ES256"
        if isinstance(key, ed25519.Ed25519PrivateKey):
            return key, "EdDSA"
        raise CdpCredentialsError(f"Unsupported key type: {type(key).__name__}")

    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CdpCredentialsError("Private key is neither PEM nor base64") from exc
    # Ed25519 secrets are exported as seed || public key.
    if len(raw) == 64:
        raw = raw[:32]
    if len(raw) != 32:
        raise CdpCredentialsError("Ed25519 private key must be 32 or 64 bytes")
    return ed25519.Ed25519PrivateKey.from_private_bytes(raw), "EdDSA"
