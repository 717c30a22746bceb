"""Comprehensive error handling tests."""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi import Request
from fastapi.exceptions import RequestValidationError

from src.exceptions import (
    EnvelopeError,
    ForbiddenError,
    MalformedRequestError,
    RateLimitError,
    RequestTooLargeError,
    ServiceUnavailableError,
    TokenExpiredError,
    TooManyParametersError,
)
from src.handlers.exception_handler import (
    collector_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)


@pytest.fixture
def mock_request() -> AsyncMock:
    """Mock request carrying a correlation ID."""
    request = AsyncMock(spec=Request)
    request.state.correlation_id = "test-correlation-id"
    request.method = "POST"
    request.url.path = "/collect"
    return request


@pytest.mark.asyncio
async def test_validation_error_includes_correlation_id(mock_request) -> None:
    """Test that validation errors include correlation ID."""
    exc = RequestValidationError(
        errors=[{"loc": ("query", "limit"), "msg": "field required", "type": "missing"}]
    )

    response = await validation_exception_handler(mock_request, exc)

    assert response.status_code == 400
    data = json.loads(response.body)
    assert data["correlation_id"] == "test-correlation-id"
    assert data["error_code"] == "VALIDATION_ERROR"
    assert data["details"]["validation_errors"][0]["message"] == "Field is required"


@pytest.mark.asyncio
async def test_validation_error_with_multiple_fields(mock_request) -> None:
    """Test that validation errors with multiple fields are summarized."""
    exc = RequestValidationError(
        errors=[
            {"loc": ("body", "events"), "msg": "value is not a valid list", "type": "list_type"},
            {"loc": ("body", "consent"), "msg": "value is not a valid dict", "type": "dict_type"},
        ]
    )

    response = await validation_exception_handler(mock_request, exc)

    data = json.loads(response.body)
    assert "(and 1 more errors)" in data["message"]
    fields = [error["field"] for error in data["details"]["validation_errors"]]
    assert fields == ["events", "consent"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc,status_code,error_code",
    [
        (MalformedRequestError("Missing events array or single event data"), 400, "MALFORMED_REQUEST"),
        (TooManyParametersError(param_count=27, event_name="custom"), 400, "TOO_MANY_PARAMETERS"),
        (EnvelopeError(), 400, "INVALID_ENVELOPE"),
        (TokenExpiredError(expired_at=1731322800), 400, "TOKEN_EXPIRED"),
        (ForbiddenError("Origin not allowed"), 403, "FORBIDDEN"),
        (RequestTooLargeError(), 413, "PAYLOAD_TOO_LARGE"),
    ],
)
async def test_collector_errors_rendered(mock_request, exc, status_code, error_code) -> None:
    """Test the error body of each collector error."""
    response = await collector_exception_handler(mock_request, exc)

    assert response.status_code == status_code
    body = json.loads(response.body)
    assert body["status"] == "error"
    assert body["error_code"] == error_code
    assert body["message"] == exc.message
    assert body["details"] == exc.details
    assert body["correlation_id"] == "test-correlation-id"


@pytest.mark.asyncio
async def test_too_many_parameters_details(mock_request) -> None:
    """Test that the parameter count and limit are reported."""
    response = await collector_exception_handler(
        mock_request, TooManyParametersError(param_count=27, event_name="custom")
    )

    body = json.loads(response.body)
    assert body["details"] == {"param_count": 27, "limit": 25, "event_name": "custom"}
    assert "maximum of 25" in body["message"]


@pytest.mark.asyncio
async def test_rate_limit_error_includes_retry_after_header(mock_request) -> None:
    """Test that rate limit errors include Retry-After header."""
    exc = RateLimitError(message="Rate limit exceeded: 100 requests per 60 seconds", retry_after=45)

    response = await collector_exception_handler(mock_request, exc)

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "45"
    body = json.loads(response.body)
    assert body["error_code"] == "RATE_LIMIT_EXCEEDED"
    assert body["details"]["retry_after"] == 45


@pytest.mark.asyncio
async def test_queue_store_unavailable(mock_request) -> None:
    """Test that queue store failures return 503 with Retry-After."""
    response = await collector_exception_handler(
        mock_request, ServiceUnavailableError(service="dynamodb", retry_after=30)
    )

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "30"
    assert json.loads(response.body)["details"]["service"] == "dynamodb"


@pytest.mark.asyncio
async def test_connection_error_returns_503(mock_request) -> None:
    """Test that connection errors return 503."""
    response = await generic_exception_handler(
        mock_request, ConnectionError("Unable to connect to DynamoDB")
    )

    assert response.status_code == 503
    body = json.loads(response.body)
    assert body["error_code"] == "SERVICE_UNAVAILABLE"
    assert "retry_after" in body["details"]


@pytest.mark.asyncio
async def test_timeout_returns_503(mock_request) -> None:
    """Test that timeouts return 503."""
    response = await generic_exception_handler(mock_request, TimeoutError("request timed out"))

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_internal_error_includes_correlation_id(mock_request) -> None:
    """Test that internal errors include correlation ID."""
    response = await generic_exception_handler(mock_request, ValueError("Unexpected error"))

    assert response.status_code == 500
    body = json.loads(response.body)
    assert body["error_code"] == "INTERNAL_ERROR"
    assert body["correlation_id"] == "test-correlation-id"
    assert "contact support" in body["message"].lower()


@pytest.mark.asyncio
async def test_error_response_without_correlation_id() -> None:
    """Test that errors work even without correlation ID."""
    mock_request = AsyncMock(spec=Request)
    mock_request.state = AsyncMock()
    type(mock_request.state).correlation_id = property(lambda self: None)

    response = await collector_exception_handler(mock_request, ForbiddenError())

    assert response.status_code == 403
    body = json.loads(response.body)
    assert "correlation_id" not in body
