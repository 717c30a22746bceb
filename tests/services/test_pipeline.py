"""Tests for the intake pipeline service."""

from unittest.mock import AsyncMock, patch

import pytest
from botocore.exceptions import ClientError

from src.attribution.resolver import AttributionResolver, SessionAttributionStore
from src.exceptions import MalformedRequestError, ServiceUnavailableError, TooManyParametersError
from src.models.event import ConsentValue
from src.models.request import RequestContext
from src.services.delivery_client import DeliveryOutcome, DeliveryResult
from src.services.pipeline import CollectService
from src.transform.payload import transform_event

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def browser_context() -> RequestContext:
    """Context of a regular browser request."""
    return RequestContext(
        client_ip="203.0.113.9",
        headers={
            "user-agent": CHROME_UA,
            "accept": "application/json, text/plain, */*",
            "accept-language": "nl-NL,nl;q=0.9",
            "accept-encoding": "gzip, deflate, br",
            "content-type": "application/json",
            "origin": "https://example.com",
        },
        correlation_id="corr-1",
    )


@pytest.fixture
def mock_queue_service() -> AsyncMock:
    """Mock QueueService."""
    queue_service = AsyncMock()
    queue_service.enqueue.return_value = ("batch-1", [])
    return queue_service


@pytest.fixture
def mock_delivery() -> AsyncMock:
    """Mock DeliveryClient."""
    client = AsyncMock()
    client.send.return_value = DeliveryResult(outcome=DeliveryOutcome.SUCCESS, status_code=204)
    return client


@pytest.fixture
def service(mock_queue_service, mock_delivery) -> CollectService:
    """CollectService with mocked queue and delivery."""
    return CollectService(
        queue_service=mock_queue_service,
        delivery_client=mock_delivery,
        resolver=AttributionResolver(store=SessionAttributionStore()),
    )


BATCH = {
    "events": [
        {
            "name": "page_view",
            "params": {
                "session_id": "1731322800",
                "client_id": "1234567890.1731322800",
                "page_referrer": "https://www.bing.com/",
                "screen_resolution": "1920x1080",
                "botData": {"webdriver_detected": False},
            },
        },
        {"name": "scroll", "params": {"percent_scrolled": 50}},
    ],
    "consent": {"ad_user_data": "GRANTED", "ad_personalization": "GRANTED", "consent_reason": "button_click"},
}


@pytest.mark.asyncio
async def test_batch_is_queued(service, mock_queue_service, browser_context) -> None:
    """Test that a browser batch is attributed and queued."""
    outcome = await service.collect(BATCH, browser_context)

    assert outcome.filtered is False
    assert outcome.events_received == 2
    assert outcome.events_queued == 2
    assert outcome.batch_id == "batch-1"

    events, consent, context, _ = mock_queue_service.enqueue.call_args.args
    assert consent.ad_user_data is ConsentValue.GRANTED
    assert context is browser_context
    assert [event.name for event in events] == ["page_view", "scroll"]
    assert "botData" not in events[0].params
    assert events[0].params["source"] == "bing"
    assert events[1].params["session_id"] == "1731322800"
    assert events[1].params["source"] == "(internal)"


@pytest.mark.asyncio
async def test_bot_batch_is_filtered(service, mock_queue_service, mock_delivery) -> None:
    """Test that bot traffic stops at the gate."""
    context = RequestContext(
        client_ip="66.249.66.1",
        headers={"user-agent": "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"},
    )

    with patch("src.services.pipeline.transform_event", wraps=transform_event) as transformer:
        outcome = await service.collect(BATCH, context)

    assert outcome.filtered is True
    assert outcome.verdict.is_bot is True
    assert outcome.events_received == 2
    mock_queue_service.enqueue.assert_not_called()
    mock_delivery.send.assert_not_called()
    transformer.assert_not_called()


@pytest.mark.asyncio
async def test_malformed_body(service, browser_context) -> None:
    """Test that unrecognised bodies are rejected."""
    with pytest.raises(MalformedRequestError):
        await service.collect({"foo": "bar"}, browser_context)


@pytest.mark.asyncio
async def test_too_many_parameters_queues_nothing(service, mock_queue_service, browser_context) -> None:
    """Test that one oversized event rejects the whole request."""
    body = {
        "events": [
            {"name": "page_view", "params": {"session_id": "1"}},
            {"name": "custom", "params": {f"p{i}": i for i in range(30)}},
        ]
    }

    with patch("src.transform.payload.record_transform_error"):
        with pytest.raises(TooManyParametersError):
            await service.collect(body, browser_context)

    mock_queue_service.enqueue.assert_not_called()


@pytest.mark.asyncio
async def test_queue_store_unavailable(service, mock_queue_service, browser_context) -> None:
    """Test that DynamoDB errors surface as service unavailable."""
    mock_queue_service.enqueue.side_effect = ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "no table"}}, "BatchWriteItem"
    )

    with pytest.raises(ServiceUnavailableError) as exc_info:
        await service.collect(BATCH, browser_context)

    assert exc_info.value.status_code == 503


class TestImmediateDelivery:
    """Tests for delivery without the queue."""

    @pytest.mark.asyncio
    async def test_all_delivered(self, service, mock_queue_service, mock_delivery, browser_context) -> None:
        """Test that successful deliveries skip the queue."""
        with patch("src.services.pipeline.settings.immediate_delivery", True):
            outcome = await service.collect(BATCH, browser_context)

        assert outcome.events_delivered == 2
        assert outcome.events_queued == 0
        assert outcome.batch_id is None
        mock_queue_service.enqueue.assert_not_called()
        payload, headers = mock_delivery.send.call_args_list[0].args
        assert payload.client_id == "1234567890.1731322800"
        assert "origin" not in headers

    @pytest.mark.asyncio
    async def test_retryable_failures_queued(self, service, mock_queue_service, mock_delivery, browser_context) -> None:
        """Test that retryable failures fall back to the queue and permanent ones are dropped."""
        mock_delivery.send.side_effect = [
            DeliveryResult(outcome=DeliveryOutcome.RETRYABLE, error="HTTP 503"),
            DeliveryResult(outcome=DeliveryOutcome.PERMANENT, error="HTTP 400"),
        ]

        with patch("src.services.pipeline.settings.immediate_delivery", True):
            outcome = await service.collect(BATCH, browser_context)

        assert outcome.events_delivered == 0
        assert outcome.events_queued == 1
        assert outcome.batch_id == "batch-1"
        queued_events = mock_queue_service.enqueue.call_args.args[0]
        assert [event.name for event in queued_events] == ["page_view"]


@pytest.mark.asyncio
async def test_user_data_denied_batch_end_to_end(service, mock_delivery, browser_context) -> None:
    """
    Test a batch with ad_user_data denied and personalization granted.

    1. The first event carries the client's original google/organic attribution
    2. Both delivered payloads lose the persistent client id and precise location
    3. Campaign data is kept
    4. The purchase is attributed to google/organic
    """
    body = {
        "events": [
            {
                "name": "page_view",
                "params": {
                    "session_id": "1731322800",
                    "isCompleteData": True,
                    "originalSource": "google",
                    "originalMedium": "organic",
                    "geo_city": "Amsterdam",
                    "geo_country": "Netherlands",
                },
            },
            {"name": "purchase", "params": {"value": 50, "currency": "EUR"}},
        ],
        "consent": {"ad_user_data": "DENIED", "ad_personalization": "GRANTED"},
    }

    with patch("src.services.pipeline.settings.immediate_delivery", True):
        outcome = await service.collect(body, browser_context)

    assert outcome.events_delivered == 2
    page_view, purchase = (call.args[0] for call in mock_delivery.send.call_args_list)

    for payload in (page_view, purchase):
        assert payload.client_id == "session_1731322800"
        assert payload.ip_override is None
        assert payload.user_location.city is None
        assert payload.user_location.country_id is None
        assert payload.consent == {"ad_user_data": "DENIED", "ad_personalization": "GRANTED"}
        params = payload.events[0].params
        assert "geo_city" not in params
        assert params["campaign"] == "(not set)"

    purchase_params = purchase.events[0].params
    assert purchase.events[0].name == "purchase"
    assert (purchase_params["source"], purchase_params["medium"]) == ("google", "organic")
    assert purchase_params["value"] == 50
    assert purchase_params["currency"] == "EUR"


@pytest.mark.asyncio
async def test_non_string_client_fields_accepted(service, mock_queue_service, browser_context) -> None:
    """Test that numeric timezone and user_agent params are queued, not rejected."""
    body = {"name": "page_view", "params": {"session_id": "42", "timezone": 5, "user_agent": 12345}}

    outcome = await service.collect(body, browser_context)

    assert outcome.events_queued == 1
    mock_queue_service.enqueue.assert_awaited_once()
