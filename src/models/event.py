"""Event, consent and verdict models shared across the pipeline."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConsentValue(str, Enum):
    """Value of a single consent dimension."""

    GRANTED = "GRANTED"
    DENIED = "DENIED"


class ConsentDecision(BaseModel):
    """
    Consent decision applied to every event of a request.

    Attributes:
        ad_user_data: Whether precise user identifiers may be sent
        ad_personalization: Whether advertising attribution may be sent
        reason: Audit reason reported by the client (or inferred)
    """

    model_config = ConfigDict(frozen=True)

    ad_user_data: ConsentValue = ConsentValue.DENIED
    ad_personalization: ConsentValue = ConsentValue.DENIED
    reason: str = "missing_data"

    @property
    def user_data_granted(self) -> bool:
        return self.ad_user_data is ConsentValue.GRANTED

    @property
    def personalization_granted(self) -> bool:
        return self.ad_personalization is ConsentValue.GRANTED

    def as_wire(self) -> dict[str, str]:
        """Return the two canonical fields in upstream format."""
        return {
            "ad_user_data": self.ad_user_data.value,
            "ad_personalization": self.ad_personalization.value,
        }

    def as_param(self) -> str:
        """Return the human-readable audit string embedded in params."""
        return (
            f"ad_personalization: {self.ad_personalization.value}. "
            f"ad_user_data: {self.ad_user_data.value}. "
            f"reason: {self.reason or 'unknown'}"
        )


class NormalizedEvent(BaseModel):
    """
    Single event after intake normalization.

    Attributes:
        name: Event name (never empty)
        params: Event parameters
        client_id: Persistent client identifier
        session_id: Session identifier, if the client reported one
        timestamp: Event time in epoch milliseconds
    """

    name: str = Field(..., min_length=1, description="Event name")
    params: dict[str, Any] = Field(default_factory=dict)
    client_id: str = Field(..., description="Client identifier")
    session_id: str | None = Field(None, description="Session identifier")
    timestamp: int = Field(..., description="Epoch milliseconds")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "page_view",
                "params": {
                    "page_location": "https://example.com/",
                    "source": "google",
                    "medium": "organic",
                },
                "client_id": "1234567890.1731322800",
                "session_id": "1731322800123",
                "timestamp": 1731322800123,
            }
        }
    )


class SignalResult(BaseModel):
    """Outcome of one independent bot detection check."""

    model_config = ConfigDict(frozen=True)

    name: str
    positive: bool
    weight: int = 0
    reasons: tuple[str, ...] = ()


class BotVerdict(BaseModel):
    """
    Security gate verdict for a request.

    Attributes:
        is_bot: Whether enough signals corroborate automated traffic
        score: Sum of the weights of positive signals (0-100)
        reasons: Reasons reported by positive signals
        signals: Every evaluated signal, positive or not
    """

    model_config = ConfigDict(frozen=True)

    is_bot: bool
    score: int
    reasons: tuple[str, ...] = ()
    signals: tuple[SignalResult, ...] = ()

    @property
    def positive_signals(self) -> list[str]:
        return [signal.name for signal in self.signals if signal.positive]


class AttributionContext(BaseModel):
    """Marketing attribution for a visit."""

    model_config = ConfigDict(frozen=True)

    source: str = "(direct)"
    medium: str = "none"
    campaign: str = "(not set)"
    content: str | None = None
    term: str | None = None
    gclid: str | None = None
    traffic_type: str = "direct"

    def as_params(self, prefix: str = "") -> dict[str, Any]:
        """
        Render the context as event parameters.

        Args:
            prefix: Empty for current fields, "original" for the shadow copy

        Returns:
            Dict of parameter names to values, skipping empty optionals
        """
        values = {
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
            "content": self.content,
            "term": self.term,
            "gclid": self.gclid,
            "traffic_type": self.traffic_type,
        }
        if prefix:
            values = {
                prefix + _camel(key): value for key, value in values.items()
            }
        return {key: value for key, value in values.items() if value}


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head.capitalize() + "".join(part.capitalize() for part in rest)


class UserLocation(BaseModel):
    """Structured user location sent at the payload top level."""

    city: str | None = None
    region_id: str | None = None
    country_id: str | None = None
    subcontinent_id: str | None = None
    continent_id: str | None = None


class DeviceInfo(BaseModel):
    """Structured device description sent at the payload top level."""

    category: str | None = None
    language: str | None = None
    screen_resolution: str | None = None
    operating_system: str | None = None
    operating_system_version: str | None = None
    model: str | None = None
    brand: str | None = None
    browser: str | None = None
    browser_version: str | None = None


class WireEvent(BaseModel):
    """Event entry inside the upstream payload."""

    name: str
    params: dict[str, Any] = Field(default_factory=dict)


class TransformedPayload(BaseModel):
    """Upstream Measurement Protocol payload for a single event."""

    client_id: str
    events: list[WireEvent]
    user_id: str | None = None
    timestamp_micros: int | None = None
    consent: dict[str, str] | None = None
    user_location: UserLocation | None = None
    device: DeviceInfo | None = None
    user_agent: str | None = None
    ip_override: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON body sent upstream."""
        return self.model_dump(exclude_none=True)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": "1234567890.1731322800",
                "events": [
                    {
                        "name": "page_view",
                        "params": {
                            "source": "google",
                            "medium": "organic",
                            "engagement_time_msec": 1000,
                        },
                    }
                ],
                "consent": {
                    "ad_user_data": "GRANTED",
                    "ad_personalization": "GRANTED",
                },
                "user_location": {"country_id": "NL", "continent_id": "150"},
                "device": {"category": "desktop", "browser": "Chrome"},
            }
        }
    )
