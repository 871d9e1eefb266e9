"""
Shared API Middleware
=====================

Request tracing and error translation for the automation API.
"""

import time
import uuid
from typing import Callable
from datetime import datetime, timezone

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.responses import JSONResponse

from ticket_automation.core.exceptions import (
    ApplicationException,
    InvalidDefinitionException,
    ResourceNotFoundException,
    ValidationException,
)
from ticket_automation.shared.infrastructure.logging import (
    bind_correlation_id,
    correlation_id_var,
    get_logger,
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def current_correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or correlation_id_var.get() or "unknown"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Binds the caller's correlation id (or a fresh one) for the duration of
    the request.

    Automation tasks submitted by the request inherit the binding, so
    their logs can be joined with the request that triggered them.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        with bind_correlation_id(correlation_id):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, with its outcome and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        context = {"method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **context,
                    "correlation_id": current_correlation_id(request),
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000),
                },
            )
            raise

        logger.info(
            "Request completed",
            extra={
                **context,
                "correlation_id": current_correlation_id(request),
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000),
            },
        )
        return response


def _error_body(exc: ApplicationException) -> dict:
    body = {"detail": exc.message}
    if exc.details:
        body["errors"] = exc.details
    return body


async def not_found_handler(request: Request, exc: ResourceNotFoundException) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))


async def validation_handler(request: Request, exc: ValidationException) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_body(exc))


async def invalid_definition_handler(request: Request, exc: InvalidDefinitionException) -> JSONResponse:
    logger.error("Stored definition no longer validates", extra={"kind": exc.kind, "id": exc.definition_id})
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_body(exc))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the failure and answer with a 500."""
    correlation_id = current_correlation_id(request)
    logger.exception(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        },
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None,
        },
    )
