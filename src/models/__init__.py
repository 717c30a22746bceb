"""Data models for the analytics collector."""

from src.models.event import (
    AttributionContext,
    BotVerdict,
    ConsentDecision,
    ConsentValue,
    DeviceInfo,
    NormalizedEvent,
    SignalResult,
    TransformedPayload,
    UserLocation,
    WireEvent,
)
from src.models.queue import QueuedEvent, QueueEntry, QueueStatus
from src.models.request import RequestContext

__all__ = [
    "AttributionContext",
    "BotVerdict",
    "ConsentDecision",
    "ConsentValue",
    "DeviceInfo",
    "NormalizedEvent",
    "QueueEntry",
    "QueuedEvent",
    "QueueStatus",
    "RequestContext",
    "SignalResult",
    "TransformedPayload",
    "UserLocation",
    "WireEvent",
]
