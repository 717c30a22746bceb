"""FastAPI dependencies guarding the intake endpoint."""

from urllib.parse import urlparse

from fastapi import Request

from src.config import settings
from src.exceptions import ForbiddenError
from src.middleware.logging import request_client_ip
from src.middleware.rate_limit import rate_limiter


def _request_origin(request: Request) -> str | None:
    """Origin header, or the scheme and host of the Referer."""
    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")
    referer = request.headers.get("referer")
    if referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"
    return None


async def verify_origin(request: Request) -> None:
    """
    Reject requests from origins outside the allow-list.

    An empty allow-list admits every origin; requests without any origin
    information are left to the bot gate.

    Raises:
        ForbiddenError: If the origin is not allowed
    """
    allowed = [origin.rstrip("/") for origin in settings.allowed_origins]
    if not allowed:
        return
    origin = _request_origin(request)
    if origin and origin not in allowed:
        raise ForbiddenError(
            message="Origin not allowed",
            details={"origin": origin},
        )


async def enforce_rate_limit(request: Request) -> None:
    """
    Apply the per-client-IP rate limit.

    Raises:
        RateLimitError: If the client exceeded its request budget
    """
    client_ip = getattr(request.state, "client_ip", None) or request_client_ip(request)
    rate_limiter.check_rate_limit(client_ip or "unknown", settings.rate_limit_per_minute)
