"""Body size limit for collection requests."""

import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.config import settings
from src.exceptions import RequestTooLargeError
from src.handlers.exception_handler import error_response_from


def declared_length(request: Request) -> int:
    """Content-Length of the request, or 0 when it is absent or not a number."""
    raw = request.headers.get("content-length", "")
    return int(raw) if raw.isdigit() else 0


class RequestSizeValidationMiddleware(BaseHTTPMiddleware):
    """
    Reject bodies larger than MAX_REQUEST_SIZE_BYTES with 413.

    The check uses the declared Content-Length, so oversized batches are
    refused before the body is read or parsed.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", None)
        if not correlation_id:
            correlation_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
            request.state.correlation_id = correlation_id

        limit = settings.max_request_size_bytes
        size = declared_length(request)
        if size <= limit:
            return await call_next(request)

        # Raising here would skip the app's exception handlers
        error = RequestTooLargeError(
            message=f"Request size {size / 1024:.1f}KB exceeds maximum {limit / 1024:.0f}KB",
            max_size=f"{limit / 1024:.0f}KB",
            details={"request_size": f"{size / 1024:.1f}KB"},
        )
        return error_response_from(error, correlation_id)
