"""
Shared API Middleware
======================

Correlation IDs, request logging and the mapping from application
exceptions to HTTP responses.
"""

import time
import uuid
from typing import Callable
from datetime import datetime, timezone

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.responses import JSONResponse

from src.config import settings
from src.core import (
    ApplicationException,
    AuthorizationException,
    ConfigurationException,
    InvalidReferenceException,
    InvalidTransitionException,
    PersistenceException,
    ResourceNotFoundException,
    UploadException,
    ValidationException,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Most specific classes first; the first isinstance match wins.
EXCEPTION_STATUS_CODES = [
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidReferenceException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (AuthorizationException, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionException, status.HTTP_409_CONFLICT),
    (UploadException, status.HTTP_502_BAD_GATEWAY),
    (PersistenceException, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConfigurationException, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: ApplicationException) -> int:
    for exc_type, code in EXCEPTION_STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Adds a correlation ID to every request and response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs request completion with status and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Render a pipeline failure as a tagged error body.

    The body keeps the exception class name so clients can branch on
    the failure kind, and the retryable flag separates input errors
    from transient ones.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = status_code_for(exc)

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request rejected",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={**exc.to_dict(), "correlation_id": correlation_id}
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Consistent 500 response for anything the pipeline did not anticipate."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "Internal server error",
            "retryable": True,
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if settings.environment == "development" else None
        }
    )
