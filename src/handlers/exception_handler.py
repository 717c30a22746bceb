"""Global exception handlers for consistent error responses."""

from typing import Any

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.exceptions import CollectorError, RateLimitError, ServiceUnavailableError
from src.logging.config import get_logger

logger = get_logger(__name__)


def create_error_response(
    error_code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> JSONResponse:
    """
    Create standardized error response.

    Args:
        error_code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code
        details: Additional error details
        correlation_id: Request correlation ID for tracing

    Returns:
        JSONResponse with error information
    """
    content = {
        "status": "error",
        "error_code": error_code,
        "message": message,
        "details": details or {},
    }

    if correlation_id:
        content["correlation_id"] = correlation_id

    return JSONResponse(status_code=status_code, content=content)


def error_response_from(exc: CollectorError, correlation_id: str | None = None) -> JSONResponse:
    """Render a CollectorError, adding Retry-After where it applies."""
    response = create_error_response(
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        correlation_id=correlation_id,
    )
    if isinstance(exc, RateLimitError):
        response.headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, ServiceUnavailableError):
        response.headers["Retry-After"] = str(exc.details.get("retry_after", 60))
    return response


async def collector_exception_handler(request: Request, exc: CollectorError) -> JSONResponse:
    """
    Handle custom CollectorError.

    Args:
        request: FastAPI request
        exc: CollectorError instance

    Returns:
        JSONResponse with error details
    """
    correlation_id = getattr(request.state, "correlation_id", None)
    if exc.status_code >= 500:
        logger.error(
            exc.message,
            extra={"correlation_id": correlation_id, "context": {"error_code": exc.error_code}},
        )
    else:
        logger.info(
            f"Request rejected: {exc.message}",
            extra={
                "correlation_id": correlation_id,
                "context": {"error_code": exc.error_code, "status_code": exc.status_code},
            },
        )
    return error_response_from(exc, correlation_id)


def _field_path(location: tuple) -> str:
    parts = [str(part) for part in location if part not in ("body", "query", "header")]
    return ".".join(parts) or "request"


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle FastAPI request validation errors.

    Args:
        request: FastAPI request
        exc: RequestValidationError raised while binding the request

    Returns:
        400 JSONResponse listing each invalid field
    """
    problems = [
        {
            "field": _field_path(error["loc"]),
            "message": "Field is required" if error["type"] == "missing" else error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    if problems:
        summary = f"{problems[0]['field']}: {problems[0]['message']}"
        if len(problems) > 1:
            summary += f" (and {len(problems) - 1} more errors)"
    else:
        summary = "Invalid request data"

    return create_error_response(
        error_code="VALIDATION_ERROR",
        message=summary,
        status_code=status.HTTP_400_BAD_REQUEST,
        details={"validation_errors": problems},
        correlation_id=getattr(request.state, "correlation_id", None),
    )


# Failures of DynamoDB or the network that a client should retry
UNAVAILABLE_ERRORS = (BotoCoreError, ClientError, ConnectionError, TimeoutError, httpx.TransportError)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle exceptions no other handler claimed.

    Storage and network failures become 503 with Retry-After; anything else
    is a 500 whose details stay in the log.

    Args:
        request: FastAPI request
        exc: Unhandled exception

    Returns:
        JSONResponse with a generic error message
    """
    correlation_id = getattr(request.state, "correlation_id", None)
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=exc,
        extra={
            "correlation_id": correlation_id,
            "context": {
                "exception_type": type(exc).__name__,
                "method": request.method,
                "path": request.url.path,
            },
        },
    )

    if isinstance(exc, UNAVAILABLE_ERRORS):
        return error_response_from(
            ServiceUnavailableError(message="Service temporarily unavailable. Please try again later."),
            correlation_id,
        )

    return create_error_response(
        error_code="INTERNAL_ERROR",
        message="An internal error occurred. Please contact support with the correlation ID.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        correlation_id=correlation_id,
    )
