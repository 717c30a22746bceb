"""Repository layer for DynamoDB operations."""

from src.repositories.queue_repository import QueueRepository

__all__ = ["QueueRepository"]
