"""Custom exception classes for the analytics collector."""

from typing import Any


class CollectorError(Exception):
    """Base exception for the collector."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code
            error_code: Machine-readable error code
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class MalformedRequestError(CollectorError):
    """Raised when the request body cannot be turned into events (400)."""

    def __init__(
        self,
        message: str = "Malformed request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="MALFORMED_REQUEST",
            details=details,
        )


class TooManyParametersError(CollectorError):
    """Raised when an event exceeds the upstream parameter budget (400)."""

    def __init__(
        self,
        param_count: int,
        limit: int = 25,
        event_name: str | None = None,
    ) -> None:
        """
        Initialize TooManyParametersError.

        Args:
            param_count: Number of parameters left after transformation
            limit: Maximum number of parameters the upstream accepts
            event_name: Name of the offending event
        """
        details: dict[str, Any] = {"param_count": param_count, "limit": limit}
        if event_name:
            details["event_name"] = event_name
        super().__init__(
            message=(
                f"Too many parameters: {param_count}. GA4 only allows a "
                f"maximum of {limit} parameters per event."
            ),
            status_code=400,
            error_code="TOO_MANY_PARAMETERS",
            details=details,
        )
        self.param_count = param_count
        self.limit = limit


class EnvelopeError(CollectorError):
    """Raised when an encrypted envelope cannot be opened (400)."""

    def __init__(
        self,
        message: str = "Invalid encrypted envelope",
        error_code: str = "INVALID_ENVELOPE",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details,
        )


class InvalidSignatureError(EnvelopeError):
    """Raised when an envelope signature does not match."""

    def __init__(self, message: str = "Invalid token signature") -> None:
        super().__init__(message=message, error_code="INVALID_SIGNATURE")


class TokenExpiredError(EnvelopeError):
    """Raised when an envelope is past its expiry time."""

    def __init__(self, expired_at: int | None = None) -> None:
        details = {"expired_at": expired_at} if expired_at is not None else None
        super().__init__(
            message="Token has expired",
            error_code="TOKEN_EXPIRED",
            details=details,
        )


class ForbiddenError(CollectorError):
    """Raised when access is denied (403)."""

    def __init__(
        self,
        message: str = "Forbidden: Access denied",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize ForbiddenError.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(
            message=message,
            status_code=403,
            error_code="FORBIDDEN",
            details=details,
        )


class RateLimitError(CollectorError):
    """Raised when rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int = 60,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize RateLimitError.

        Args:
            message: Error message
            retry_after: Seconds until retry is allowed
            details: Additional error details
        """
        error_details = details or {}
        error_details["retry_after"] = retry_after
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details=error_details,
        )
        self.retry_after = retry_after


class ServiceUnavailableError(CollectorError):
    """Raised when the queue store cannot be reached (503)."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        service: str | None = None,
        retry_after: int = 60,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize ServiceUnavailableError.

        Args:
            message: Error message
            service: Name of the unavailable service
            retry_after: Seconds until retry is recommended
            details: Additional error details
        """
        error_details = details or {}
        error_details["retry_after"] = retry_after
        if service:
            error_details["service"] = service
        super().__init__(
            message=message,
            status_code=503,
            error_code="SERVICE_UNAVAILABLE",
            details=error_details,
        )


class RequestTooLargeError(CollectorError):
    """Raised when request payload exceeds size limit (413)."""

    def __init__(
        self,
        message: str = "Request payload too large",
        max_size: str = "512KB",
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        error_details["max_size"] = max_size
        super().__init__(
            message=message,
            status_code=413,
            error_code="PAYLOAD_TOO_LARGE",
            details=error_details,
        )
