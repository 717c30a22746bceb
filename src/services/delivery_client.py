"""Outbound delivery of payloads to the GA4 Measurement Protocol."""

from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel

from src.config import settings
from src.logging.config import get_logger
from src.models.event import TransformedPayload

logger = get_logger(__name__)

# Lower-cased request header -> header name sent upstream
FORWARDED_HEADERS = {
    "user-agent": "User-Agent",
    "accept-language": "Accept-Language",
    "accept": "Accept",
    "referer": "Referer",
    "accept-encoding": "Accept-Encoding",
    "x-forwarded-for": "X-Forwarded-For",
    "x-real-ip": "X-Real-IP",
}

RETRYABLE_STATUS_CODES = frozenset({408, 429})


class DeliveryOutcome(str, Enum):
    """Classification of one delivery attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class DeliveryResult(BaseModel):
    """Result of one delivery attempt."""

    outcome: DeliveryOutcome
    status_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is DeliveryOutcome.SUCCESS


def classify_status(status_code: int) -> DeliveryOutcome:
    """
    Classify an upstream HTTP status.

    Args:
        status_code: Response status code

    Returns:
        SUCCESS for 2xx; RETRYABLE for 408, 429 and 5xx; PERMANENT otherwise
    """
    if 200 <= status_code < 300:
        return DeliveryOutcome.SUCCESS
    if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
        return DeliveryOutcome.RETRYABLE
    return DeliveryOutcome.PERMANENT


def build_forward_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Pick the original request headers that are forwarded upstream."""
    forwarded = {"Content-Type": "application/json"}
    for name, value in (headers or {}).items():
        target = FORWARDED_HEADERS.get(name.lower())
        if target and value:
            forwarded[target] = value
    forwarded.setdefault("User-Agent", settings.delivery_user_agent)
    return forwarded


class DeliveryClient:
    """
    Sends one payload per call to the upstream collection endpoint.

    There is no retry here; the queue decides what to do with the result.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        endpoint_url: str | None = None,
        measurement_id: str | None = None,
        api_secret: str | None = None,
    ) -> None:
        """
        Initialize DeliveryClient.

        Args:
            http_client: Shared AsyncClient (a short-lived one is used per call if None)
            endpoint_url: Collection endpoint (defaults to settings)
            measurement_id: GA4 measurement ID (defaults to settings)
            api_secret: GA4 API secret (defaults to settings)
        """
        self.http_client = http_client
        self.endpoint_url = endpoint_url or settings.ga4_endpoint_url
        self.measurement_id = measurement_id or settings.ga4_measurement_id
        self.api_secret = api_secret or settings.ga4_api_secret
        self.timeout = httpx.Timeout(settings.delivery_timeout_seconds)

    async def _post(self, body: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        params = {"measurement_id": self.measurement_id, "api_secret": self.api_secret}
        if self.http_client is not None:
            return await self.http_client.post(
                self.endpoint_url, params=params, json=body, headers=headers, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.endpoint_url, params=params, json=body, headers=headers)

    async def send(
        self,
        payload: TransformedPayload | dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        """
        POST one payload upstream.

        Args:
            payload: Transformed payload or its wire dict
            headers: Essential headers of the originating request

        Returns:
            DeliveryResult; transport problems are reported, never raised
        """
        if not self.measurement_id or not self.api_secret:
            logger.error("GA4 measurement ID or API secret not configured")
            return DeliveryResult(
                outcome=DeliveryOutcome.RETRYABLE,
                error="GA4 measurement ID or API secret not configured",
            )

        body = payload.to_wire() if isinstance(payload, TransformedPayload) else payload
        try:
            response = await self._post(body, build_forward_headers(headers))
        except httpx.TimeoutException as e:
            logger.warning(
                "Upstream delivery timed out",
                extra={"context": {"endpoint": self.endpoint_url, "error": str(e)}},
            )
            return DeliveryResult(outcome=DeliveryOutcome.RETRYABLE, error=f"Timeout: {e}")
        except httpx.TransportError as e:
            logger.warning(
                "Upstream delivery transport error",
                extra={"context": {"endpoint": self.endpoint_url, "error": str(e)}},
            )
            return DeliveryResult(outcome=DeliveryOutcome.RETRYABLE, error=f"Transport error: {e}")

        outcome = classify_status(response.status_code)
        error = None if outcome is DeliveryOutcome.SUCCESS else f"HTTP {response.status_code}: {response.text[:200]}"
        logger.info(
            "Upstream delivery attempted",
            extra={
                "context": {
                    "endpoint": self.endpoint_url,
                    "status_code": response.status_code,
                    "outcome": outcome.value,
                }
            },
        )
        return DeliveryResult(outcome=outcome, status_code=response.status_code, error=error)
