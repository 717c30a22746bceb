"""Request middleware: correlation logging, body size limits and per-IP rate limiting."""

from src.middleware.logging import LoggingMiddleware
from src.middleware.rate_limit import RateLimiter, rate_limiter
from src.middleware.request_validation import RequestSizeValidationMiddleware

__all__ = ["LoggingMiddleware", "RequestSizeValidationMiddleware", "RateLimiter", "rate_limiter"]
