"""Intake normalization of raw client request bodies.

Raw bodies arrive in three shapes:

- single event: ``{"name": "page_view", "params": {...}, "consent": {...}}``
  (``event_name`` is accepted in place of ``name``)
- legacy-wrapped single event: ``{"event": {"name": ..., "params": ...}}``
- batch: ``{"events": [...], "consent": {...}, "timestamp": ...}``

The shape is resolved once by ``classify_request``; everything downstream only
sees ``NormalizedEvent`` instances and one shared consent decision.
"""

import copy
import time
import uuid
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from src.exceptions import MalformedRequestError
from src.logging.config import get_logger
from src.models.event import ConsentDecision, NormalizedEvent
from src.privacy.consent import parse_consent

logger = get_logger(__name__)

# Keys that describe the event itself rather than its parameters
EVENT_LEVEL_KEYS = ("event_name", "name", "consent", "timestamp")

ORIGINAL_ATTRIBUTION_FIELDS = (
    "originalSource",
    "originalMedium",
    "originalCampaign",
    "originalContent",
    "originalTerm",
    "originalGclid",
    "originalTrafficType",
)

DEVICE_FIELDS = (
    "device_type",
    "is_mobile",
    "is_tablet",
    "is_desktop",
    "browser_name",
    "browser_version",
    "os_name",
    "os_version",
    "device_model",
    "device_brand",
    "screen_resolution",
    "screen_width",
    "screen_height",
    "viewport_width",
    "viewport_height",
)

# Fields copied from the donor event onto batch members that lack them
DONOR_FIELDS = (
    ("session_id", "client_id")
    + DEVICE_FIELDS
    + ("language", "user_agent", "timezone")
    + ORIGINAL_ATTRIBUTION_FIELDS
)


class SingleShape(BaseModel):
    """Top-level single event."""

    kind: Literal["single"] = "single"
    name: str
    params: dict[str, Any]
    consent: Any = None
    timestamp: int | None = None


class WrappedShape(BaseModel):
    """Legacy single event wrapped in an ``event`` object."""

    kind: Literal["wrapped"] = "wrapped"
    name: str
    params: dict[str, Any]
    consent: Any = None
    timestamp: int | None = None


class BatchShape(BaseModel):
    """Batch envelope with an ``events`` array."""

    kind: Literal["batch"] = "batch"
    events: list[Any]
    consent: Any = None
    timestamp: int | None = None


IntakeShape = Annotated[
    Union[SingleShape, WrappedShape, BatchShape], Field(discriminator="kind")
]


class DonorSnapshot(BaseModel):
    """Read-only copy of the context carried by a batch's complete event."""

    model_config = ConfigDict(frozen=True)

    values: dict[str, Any] = Field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self.values.get(key, default))

    def original_attribution(self) -> dict[str, Any]:
        return {
            key: self.get(key)
            for key in ORIGINAL_ATTRIBUTION_FIELDS
            if self.values.get(key)
        }


class IntakeResult(BaseModel):
    """Normalized request content."""

    events: list[NormalizedEvent]
    consent: ConsentDecision
    is_batch: bool = False
    timestamp: int
    donor: DonorSnapshot = Field(default_factory=DonorSnapshot)


def _event_name(data: dict[str, Any]) -> str | None:
    name = data.get("name") or data.get("event_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def _coerce_timestamp(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _single_params(data: dict[str, Any]) -> dict[str, Any]:
    """Params of a single event: ``params`` if present, else the body itself."""
    params = data.get("params")
    if not isinstance(params, dict):
        params = data
    return {
        key: value
        for key, value in params.items()
        if key not in EVENT_LEVEL_KEYS and key != "params"
    }


def _consent_candidate(data: dict[str, Any]) -> Any:
    if "consent" in data:
        return data["consent"]
    params = data.get("params")
    if isinstance(params, dict):
        return params.get("consent")
    return None


def classify_request(body: Any) -> IntakeShape:
    """
    Resolve the shape of a raw request body.

    Args:
        body: Decoded JSON body

    Returns:
        SingleShape, WrappedShape or BatchShape

    Raises:
        MalformedRequestError: If the body carries neither events nor a name
    """
    if not isinstance(body, dict):
        raise MalformedRequestError(
            "Request body must be a JSON object",
            details={"received_type": type(body).__name__},
        )

    timestamp = _coerce_timestamp(body.get("timestamp"))

    if "events" in body:
        events = body["events"]
        if not isinstance(events, list):
            raise MalformedRequestError("Missing events array or single event data")
        if not events:
            raise MalformedRequestError("Events array is empty")
        return BatchShape(
            events=events, consent=body.get("consent"), timestamp=timestamp
        )

    wrapped = body.get("event")
    if isinstance(wrapped, dict):
        name = _event_name(wrapped)
        if name is None:
            raise MalformedRequestError("Missing event name")
        consent = body.get("consent")
        if consent is None:
            consent = _consent_candidate(wrapped)
        return WrappedShape(
            name=name,
            params=_single_params(wrapped),
            consent=consent,
            timestamp=timestamp or _coerce_timestamp(wrapped.get("timestamp")),
        )

    name = _event_name(body)
    if name is not None:
        return SingleShape(
            name=name,
            params=_single_params(body),
            consent=_consent_candidate(body),
            timestamp=timestamp,
        )

    raise MalformedRequestError("Missing events array or single event data")


def _batch_items(shape: BatchShape) -> list[tuple[str, dict[str, Any], Any, int | None]]:
    """Validate batch members and return (name, params, consent, timestamp)."""
    items = []
    for index, event in enumerate(shape.events):
        if not isinstance(event, dict):
            raise MalformedRequestError(
                f"Missing event name at index {index}", details={"index": index}
            )
        name = _event_name(event)
        if name is None:
            raise MalformedRequestError(
                f"Missing event name at index {index}", details={"index": index}
            )
        params = event.get("params")
        params = dict(params) if isinstance(params, dict) else {}
        if event.get("isCompleteData"):
            params.setdefault("isCompleteData", True)
        items.append(
            (name, params, params.pop("consent", None), _coerce_timestamp(event.get("timestamp")))
        )
    return items


def _is_complete(params: dict[str, Any]) -> bool:
    if params.get("isCompleteData"):
        return True
    if not params.get("session_id"):
        return False
    return any(params.get(key) for key in DEVICE_FIELDS + ORIGINAL_ATTRIBUTION_FIELDS)


def find_donor(params_list: list[dict[str, Any]]) -> DonorSnapshot:
    """
    Pick the first complete event of a batch and snapshot its context.

    Args:
        params_list: Params of every event in batch order

    Returns:
        DonorSnapshot (empty when no event qualifies)
    """
    flagged = [params for params in params_list if params.get("isCompleteData")]
    candidates = flagged or [params for params in params_list if _is_complete(params)]
    if not candidates:
        return DonorSnapshot()
    donor = candidates[0]
    return DonorSnapshot(
        values={
            key: copy.deepcopy(donor[key])
            for key in DONOR_FIELDS
            if donor.get(key) not in (None, "")
        }
    )


def backfill(params: dict[str, Any], donor: DonorSnapshot) -> dict[str, Any]:
    """
    Fill fields an event lacks from the donor snapshot.

    Args:
        params: Event params (not modified)
        donor: Donor snapshot

    Returns:
        New params dict; existing values are never overwritten
    """
    filled = dict(params)
    for key in donor.values:
        if filled.get(key) in (None, ""):
            filled[key] = donor.get(key)
    return filled


def normalize(shape: IntakeShape, now_ms: int | None = None) -> IntakeResult:
    """
    Turn a classified request into normalized events.

    Args:
        shape: Result of classify_request
        now_ms: Current time in epoch milliseconds (defaults to the clock)

    Returns:
        IntakeResult with events, the shared consent decision and the donor
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    request_timestamp = shape.timestamp or now_ms

    if isinstance(shape, BatchShape):
        items = _batch_items(shape)
        consent_raw = shape.consent
        if consent_raw is None:
            consent_raw = next((item[2] for item in items if item[2] is not None), None)
    else:
        params = dict(shape.params)
        params.pop("consent", None)
        params.setdefault("isCompleteData", True)
        items = [(shape.name, params, None, shape.timestamp)]
        consent_raw = shape.consent

    donor = find_donor([item[1] for item in items])

    events = []
    for name, params, _consent, timestamp in items:
        params = backfill(params, donor)
        client_id = params.pop("client_id", None) or str(uuid.uuid4())
        session_id = params.get("session_id")
        events.append(
            NormalizedEvent(
                name=name,
                params=params,
                client_id=str(client_id),
                session_id=str(session_id) if session_id else None,
                timestamp=timestamp or request_timestamp,
            )
        )

    consent = parse_consent(consent_raw)
    logger.debug(
        "Request normalized",
        extra={
            "context": {
                "shape": shape.kind,
                "event_count": len(events),
                "has_donor": bool(donor.values),
            }
        },
    )
    return IntakeResult(
        events=events,
        consent=consent,
        is_batch=isinstance(shape, BatchShape),
        timestamp=request_timestamp,
        donor=donor,
    )
