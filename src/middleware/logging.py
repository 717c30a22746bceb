"""Request logging middleware with correlation ID and client IP support."""

import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.logging.config import get_logger
from src.utils.client_ip import resolve_client_ip

logger = get_logger(__name__)


def request_client_ip(request: Request) -> str | None:
    """Resolve the originating client IP of a request."""
    return resolve_client_ip(
        request.headers, request.client.host if request.client else None
    )


def _request_context(request: Request, **fields: Any) -> dict[str, Any]:
    context = {
        "method": request.method,
        "path": request.url.path,
        "client_ip": getattr(request.state, "client_ip", None),
    }
    context.update(fields)
    return context


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with a correlation ID.

    The correlation ID comes from X-Request-ID when the caller sends one and
    is echoed back on the response. The resolved client IP is stored on
    request.state so the collection pipeline does not resolve it twice.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        request.state.client_ip = request_client_ip(request)
        log_extra = {"correlation_id": correlation_id}

        started = time.perf_counter()
        logger.info(
            "Request started",
            extra={
                **log_extra,
                "context": _request_context(request, user_agent=request.headers.get("user-agent")),
            },
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.error(
                "Request failed with exception",
                exc_info=exc,
                extra={**log_extra, "context": _request_context(request, response_time_ms=elapsed_ms)},
            )
            raise

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "Request completed",
            extra={
                **log_extra,
                "context": _request_context(
                    request, status_code=response.status_code, response_time_ms=elapsed_ms
                ),
            },
        )

        response.headers["X-Request-ID"] = correlation_id
        return response
