"""Integration tests for the queue lifecycle against DynamoDB."""

from unittest.mock import AsyncMock

import pytest

from src.models.event import ConsentDecision, ConsentValue, NormalizedEvent
from src.models.queue import QueueStatus
from src.models.request import RequestContext
from src.services.delivery_client import DeliveryOutcome, DeliveryResult
from src.services.queue_service import QueueService

pytestmark = pytest.mark.integration

GRANTED = ConsentDecision(
    ad_user_data=ConsentValue.GRANTED,
    ad_personalization=ConsentValue.GRANTED,
    reason="button_click",
)


def make_event(name: str) -> NormalizedEvent:
    return NormalizedEvent(
        name=name,
        client_id="1234567890.1731322800",
        session_id="1731322800",
        timestamp=1731322800123,
        params={"session_id": "1731322800", "page_location": "https://example.com/"},
    )


@pytest.mark.asyncio
async def test_enqueue_process_and_stats(queue_repository) -> None:
    """
    Test the full queue lifecycle.

    1. Two events are enqueued as pending
    2. A processing run delivers one and retries the other
    3. Stats reflect the new statuses
    4. A second run cannot claim the completed entry
    """
    delivery = AsyncMock()
    delivery.send.side_effect = [
        DeliveryResult(outcome=DeliveryOutcome.SUCCESS, status_code=204),
        DeliveryResult(outcome=DeliveryOutcome.RETRYABLE, status_code=503, error="HTTP 503"),
    ]
    service = QueueService(repository=queue_repository, delivery_client=delivery)

    batch_id, entries = await service.enqueue(
        [make_event("page_view"), make_event("scroll")],
        GRANTED,
        RequestContext(client_ip="81.2.69.160", headers={"user-agent": "Mozilla/5.0"}),
    )

    assert await queue_repository.count_by_status(QueueStatus.PENDING) == 2
    stored = await queue_repository.get_by_id(entries[0].id)
    assert stored.batch_id == batch_id
    assert stored.original_headers == {"user-agent": "Mozilla/5.0"}

    report = await service.process_queue()

    assert report.fetched == 2
    assert report.completed == 1
    assert report.retried == 1

    stats = await service.get_stats()
    assert stats["completed"] == 1
    assert stats["pending"] == 1
    assert stats["total"] == 2

    completed = (await queue_repository.list_by_status(QueueStatus.COMPLETED))[0]
    assert completed.final_payload["client_id"] == "1234567890.1731322800"
    assert completed.ttl is not None
    assert await queue_repository.transition(
        completed.id, QueueStatus.PENDING, QueueStatus.PROCESSING
    ) is None


@pytest.mark.asyncio
async def test_retry_ceiling_marks_failed(queue_repository) -> None:
    """Test that an entry failing every attempt ends up failed."""
    delivery = AsyncMock()
    delivery.send.return_value = DeliveryResult(
        outcome=DeliveryOutcome.RETRYABLE, status_code=500, error="HTTP 500"
    )
    service = QueueService(repository=queue_repository, delivery_client=delivery)
    _, entries = await service.enqueue([make_event("purchase")], GRANTED, RequestContext())

    for _ in range(3):
        await service.process_queue()

    entry = await queue_repository.get_by_id(entries[0].id)
    assert entry.status is QueueStatus.FAILED
    assert entry.retry_count == 3
    assert entry.error_message == "HTTP 500"
