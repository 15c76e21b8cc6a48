from __future__ import annotations

import time
import uuid
from collections.abc import Iterable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from railpay.core.constants import REQUEST_ID_HEADER
from railpay.core.logging import bind_request_context, clear_request_context

Logger = structlog.BoundLogger


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Ensure every request/response pair carries a correlation identifier."""

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        bind_request_context(request_id=request_id, path=request.url.path)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers[self._header_name] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one structured log line per inbound HTTP request.

    Webhook deliveries are tagged with whether a signature header was sent;
    the signature itself is never logged.
    """

    def __init__(
        self, app: ASGIApp, signature_headers: Iterable[str] = ()
    ) -> None:
        super().__init__(app)
        self._signature_headers = tuple(name.lower() for name in signature_headers)
        self._logger: Logger = structlog.get_logger("railpay.request")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        client = request.client.host if request.client is not None else "unknown"

        try:
            response = await call_next(request)
        except Exception:
            self._logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                client=client,
                duration_ms=_elapsed_ms(start),
            )
            raise

        self._logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            client=client,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(start),
            signed=self._is_signed(request),
        )
        return response

    def _is_signed(self, request: Request) -> bool | None:
        if not self._signature_headers or request.method != "POST":
            return None
        return any(name in request.headers for name in self._signature_headers)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)
