from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict

from railpay.core.config import Settings, get_settings

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "error"]
    service: str
    version: str
    timestamp: datetime
    environment: str
    rails: dict[str, bool]

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


@router.get("", summary="Service health check", response_model=HealthResponse)
async def health(
    request: Request, settings: Settings = Depends(get_settings)
) -> dict[str, object]:
    """Return a lightweight health payload plus which rails hold real credentials."""

    orchestrator = getattr(request.app.state, "orchestrator", None)
    rails = orchestrator.rail_summary() if orchestrator is not None else {}
    payload: dict[str, object] = {
        "status": "ok",
        "service": settings.project_name,
        "version": settings.project_version,
        "timestamp": datetime.now(UTC),
        "environment": settings.environment.value,
        "rails": rails,
    }
    logger.debug("health_status", rails=rails)
    return payload
