from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from starlette.types import Lifespan

from railpay.core.config import Settings
from railpay.payments.dependencies import build_orchestrator


def create_lifespan(settings: Settings) -> Lifespan[FastAPI]:
    logger = structlog.get_logger(__name__).bind(environment=settings.environment)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_startup")
        # One pooled client is shared by every rail for the life of the app.
        http_client = httpx.AsyncClient(timeout=settings.rails.timeout_seconds)
        app.state.http_client = http_client
        app.state.orchestrator = build_orchestrator(settings, http_client)
        logger.info("payment_rails_ready", **app.state.orchestrator.rail_summary())

        try:
            yield
        finally:
            app.state.orchestrator = None
            app.state.http_client = None
            await http_client.aclose()
            logger.info("application_shutdown")

    return lifespan
