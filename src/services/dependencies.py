"""Shared service instances for routes, entry points and the scheduler."""

from functools import lru_cache

from src.services.pipeline import CollectService
from src.services.queue_service import QueueService


@lru_cache
def get_queue_service() -> QueueService:
    """Process-wide QueueService (owns the processing lock)."""
    return QueueService()


@lru_cache
def get_collect_service() -> CollectService:
    queue_service = get_queue_service()
    return CollectService(
        queue_service=queue_service, delivery_client=queue_service.delivery_client
    )
