"""
Shared API Middleware
======================

Request correlation, access logging and the exception-to-response mapping
for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ticketmate.core import ApplicationException
from ticketmate.shared.infrastructure.logging import (
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation id for the duration of the request.

    Taken from the incoming header or generated, echoed back on the response
    and stamped on every log line written while the request is served,
    including the enqueue lines of workflow runs it starts.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log: one line when a request starts, one when it ends."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        context = {"method": request.method, "path": request.url.path}

        logger.info(
            "Request started",
            extra={**context, "client": request.client.host if request.client else None}
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **context,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                **context,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


# ========== Exception Handlers ==========

async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """Map the application exception hierarchy onto its HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error_code": exc.error_code,
            "error_message": exc.message
        }
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation errors become 400 with a field-level message."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or None
    reason = first.get("msg", "Invalid request")

    return JSONResponse(
        status_code=400,
        content={
            "message": f"{field}: {reason}" if field else reason,
            "code": "VALIDATION_ERROR",
            "details": {
                "field": field,
                "errors": [
                    {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg")}
                    for err in errors
                ],
            },
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled exceptions: generic body, details to the log only."""
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.error(
        "Unhandled exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
