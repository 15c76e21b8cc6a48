"""Shared fixtures for railpay tests."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from railpay.app import create_app
from railpay.core.config import Settings, get_settings
from railpay.payments.dependencies import build_orchestrator

MERCHANT_ADDRESS = "0x4D884A7E2459bD7DDad48Ab7e125a528DfeE60Fd"
FRONTEND_URL = "https://shop.example"
COMMERCE_SECRET = "test-commerce-webhook-secret"

_MANAGED_ENV = (
    "ENVIRONMENT",
    "COINBASE_API_KEY",
    "COINBASE_WEBHOOK_SECRET",
    "COMMERCE__API_KEY",
    "COMMERCE__WEBHOOK_SECRET",
    "CDP_API_KEY_ID",
    "CDP_PRIVATE_KEY",
    "CDP_WEBHOOK_SECRET",
    "CDP__API_KEY_ID",
    "CDP__PRIVATE_KEY",
    "CDP__WEBHOOK_SECRET",
    "DESTINATION_ADDRESS",
    "MERCHANT__DESTINATION_ADDRESS",
    "FRONTEND_URL",
    "MERCHANT__FRONTEND_URL",
    "BASE_NOTIFICATION_URL",
    "MERCHANT__BASE_NOTIFICATION_URL",
    "RAILS__TIMEOUT_SECONDS",
)

Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


def sign(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def generate_ec_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@dataclass(slots=True)
class RailApiStub:
    """Routes outbound rail calls to canned handlers keyed by method and path."""

    routes: dict[tuple[str, str], Handler] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def add(self, method: str, path: str, handler: Handler | httpx.Response) -> None:
        if isinstance(handler, httpx.Response):
            response = handler
            self.routes[(method.upper(), path)] = lambda _request: response
        else:
            self.routes[(method.upper(), path)] = handler

    def add_json(
        self, method: str, path: str, payload: Any, status_code: int = 200
    ) -> None:
        self.add(method, path, httpx.Response(status_code, json=payload))

    def handler(
        self, request: httpx.Request
    ) -> httpx.Response | Awaitable[httpx.Response]:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": {"message": "route not stubbed"}})
        return route(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def configure_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _MANAGED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DESTINATION_ADDRESS", MERCHANT_ADDRESS)
    monkeypatch.setenv("FRONTEND_URL", FRONTEND_URL)
    monkeypatch.setenv("COINBASE_WEBHOOK_SECRET", COMMERCE_SECRET)

    get_settings.cache_clear()
    try:
        yield
    finally:
        get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return get_settings()


@pytest.fixture()
def rail_api() -> RailApiStub:
    return RailApiStub()


@pytest_asyncio.fixture()
async def app(rail_api: RailApiStub) -> AsyncIterator[FastAPI]:
    application = create_app()
    http_client = rail_api.client()

    try:
        async with application.router.lifespan_context(application):
            application.state.orchestrator = build_orchestrator(
                application.state.settings, http_client
            )
            yield application
    finally:
        await http_client.aclose()


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
