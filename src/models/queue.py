"""Queue entry model for DynamoDB."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.models.event import ConsentDecision, NormalizedEvent


class QueueStatus(str, Enum):
    """Lifecycle states of a queue entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueEntry(BaseModel):
    """
    Durable unit of delivery work.

    Attributes:
        id: Unique identifier (UUID v4)
        batch_id: Identifier shared by events accepted in one request
        payload: Serialized event, consent and timestamp (JSON, or an
            encrypted token when is_encrypted is set)
        is_encrypted: Whether payload is an encrypted token
        original_headers: Essential headers of the originating request
        client_ip: Resolved client IP of the originating request
        status: pending, processing, completed or failed
        retry_count: Number of failed delivery attempts so far
        created_at: ISO 8601 timestamp of enqueueing
        processed_at: ISO 8601 timestamp of the last state change by a worker
        error_message: Last failure reason
        final_payload: Wire payload that was sent upstream
        ttl: Unix timestamp for DynamoDB TTL (terminal entries only)
    """

    id: str = Field(..., description="Queue entry identifier (UUID)")
    batch_id: str = Field(..., description="Request batch identifier")
    payload: str = Field(..., description="Serialized event data")
    is_encrypted: bool = Field(default=False)
    original_headers: dict[str, str] = Field(default_factory=dict)
    client_ip: str | None = None
    status: QueueStatus = QueueStatus.PENDING
    retry_count: int = Field(default=0, ge=0)
    created_at: str = Field(..., description="ISO 8601 creation timestamp")
    processed_at: str | None = None
    error_message: str | None = None
    final_payload: dict[str, Any] | None = None
    ttl: int | None = Field(None, description="Unix timestamp for TTL")

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "batch_id": "6ba7b810-9dad-11d1-80b4-00c04fd430c8",
                "payload": '{"event": {"name": "page_view"}}',
                "is_encrypted": False,
                "original_headers": {"user-agent": "Mozilla/5.0"},
                "status": "pending",
                "retry_count": 0,
                "created_at": "2025-11-11T12:00:00Z",
            }
        }


class QueuedEvent(BaseModel):
    """
    Content of a queue entry payload.

    Attributes:
        event: Normalized, attributed event
        consent: Consent decision of the originating request
        timestamp: Request timestamp in epoch milliseconds
        correlation_id: Correlation ID of the originating request
    """

    event: NormalizedEvent
    consent: ConsentDecision
    timestamp: int
    correlation_id: str | None = None
