"""API middleware: CORS, request logging, and error mapping.

Application errors raised by route handlers are turned into JSON
:class:`ErrorResponse` bodies here, so the routes only deal with the
happy path and with lookups that need a 404.

    OrchestrationError        → 409  (run preconditions, busy entries)
    ServiceUnavailableError   → 503
    any other UploaderError   → 502
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from transcript_uploader.api.schemas import ErrorResponse
from transcript_uploader.utils.errors import (
    OrchestrationError,
    ServiceUnavailableError,
    UploaderError,
)
from transcript_uploader.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]``; the API
        binds to localhost unless configured otherwise.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


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
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


def _status_for(exc: UploaderError) -> int:
    if isinstance(exc, OrchestrationError):
        return 409
    if isinstance(exc, ServiceUnavailableError):
        return 503
    return 502


async def uploader_error_handler(request: Request, exc: UploaderError) -> JSONResponse:
    """Convert an :class:`UploaderError` into a sanitised JSON error."""
    status_code = _status_for(exc)
    log = _logger.warning if status_code == 409 else _logger.error
    log(
        "application_error",
        error_type=type(exc).__name__,
        message=exc.message,
        service=exc.service_name,
        path=str(request.url.path),
    )
    body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UploaderError, uploader_error_handler)
