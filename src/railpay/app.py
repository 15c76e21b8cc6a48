from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from railpay.api.middleware import CorrelationIdMiddleware, RequestLoggingMiddleware
from railpay.api.routes import load_routers
from railpay.core.config import Settings, get_settings
from railpay.core.constants import HOSTED_CHARGE_SIGNATURE_HEADER
from railpay.core.lifespan import create_lifespan
from railpay.core.logging import configure_logging


def _register_middlewares(app: FastAPI, settings: Settings) -> None:
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(
        RequestLoggingMiddleware,
        signature_headers=(
            HOSTED_CHARGE_SIGNATURE_HEADER,
            settings.cdp.signature_header,
        ),
    )
    # Must stay outermost for request logs to carry request_id.
    app.add_middleware(CorrelationIdMiddleware)


def _register_routers(app: FastAPI) -> None:
    for router in load_routers():
        app.include_router(router)


def create_app() -> FastAPI:
    settings: Settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.project_name,
        description=settings.project_description,
        version=settings.project_version,
        docs_url=settings.docs_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=create_lifespan(settings),
    )

    app.state.settings = settings
    app.state.orchestrator = None
    app.openapi_tags = [
        {"name": "health", "description": "Service health check operations"},
        {
            "name": "checkout",
            "description": (
                "Create payment intents on the hosted, onramp or on-chain rail."
            ),
        },
        {"name": "payments", "description": "Payment status and demo simulation."},
        {
            "name": "webhooks",
            "description": "Inbound, signature-verified rail notifications.",
        },
        {
            "name": "subscriptions",
            "description": "Manage chain-activity notification subscriptions.",
        },
    ]

    _register_middlewares(app, settings)
    _register_routers(app)

    return app
