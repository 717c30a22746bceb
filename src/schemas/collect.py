"""Pydantic schemas for collector API responses."""

from typing import Literal

from pydantic import BaseModel, Field


class CollectAcceptedResponse(BaseModel):
    """
    Response for an accepted intake request.

    Attributes:
        success: Always True
        events_received: Number of events in the request
        events_queued: Number of events written to the durable queue
        events_delivered: Number of events delivered immediately
        batch_id: Queue batch identifier (None when nothing was queued)
    """

    success: bool = True
    events_received: int = Field(..., ge=1)
    events_queued: int = 0
    events_delivered: int = 0
    batch_id: str | None = None

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "success": True,
                "events_received": 2,
                "events_queued": 2,
                "events_delivered": 0,
                "batch_id": "6ba7b810-9dad-11d1-80b4-00c04fd430c8",
            }
        }


class CollectFilteredResponse(BaseModel):
    """Response for a request classified as bot traffic."""

    success: bool = True
    filtered: bool = True
    reason: Literal["bot_detected"] = "bot_detected"
    bot_score: int
    events_received: int

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "success": True,
                "filtered": True,
                "reason": "bot_detected",
                "bot_score": 55,
                "events_received": 1,
            }
        }


class QueueRunSummary(BaseModel):
    """Summary of a recent processing run."""

    started_at: str
    fetched: int
    completed: int
    retried: int
    failed: int
    duration_seconds: float


class QueueStatusResponse(BaseModel):
    """Queue statistics for operators."""

    pending: int
    processing: int
    completed: int
    failed: int
    total: int
    is_processing: bool
    recent_runs: list[QueueRunSummary] = Field(default_factory=list)
