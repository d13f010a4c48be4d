"""API middleware: structured request logging and error handling.

Starlette runs middleware last-added-first, so with the order used in
``artistgraph.main`` a request passes RequestLogging, then ErrorHandling,
then the route handler.  RequestLogging therefore sees the final status
code even when ErrorHandling replaced an exception with a JSON body.
"""

from __future__ import annotations

import time

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from artistgraph.api.schemas import ErrorResponse
from artistgraph.utils.errors import (
    ArtistGraphError,
    ConfigurationError,
    InvalidNameError,
    ProviderNotFoundError,
    QuotaDeferredError,
    QuotaExceededError,
)
from artistgraph.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_STATUS_FOR_ERROR: list[tuple[type[ArtistGraphError], int]] = [
    (InvalidNameError, 422),
    (ConfigurationError, 400),
    (ProviderNotFoundError, 404),
    (QuotaExceededError, 429),
    (QuotaDeferredError, 429),
]


def status_for_error(exc: ArtistGraphError) -> int:
    """HTTP status for an application error; 500 when unmapped."""
    for error_type, status in _STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn escaping ``ArtistGraphError`` subclasses into JSON ``ErrorResponse`` bodies.

    Only the error class name and message reach the client; everything
    else stays in the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except ArtistGraphError as exc:
            status = status_for_error(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=str(exc))
            return JSONResponse(status_code=status, content=body.model_dump())
