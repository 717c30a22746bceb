"""Tests for Measurement Protocol payload transformation."""

from unittest.mock import patch

import pytest

from src.exceptions import TooManyParametersError
from src.models.event import ConsentDecision, ConsentValue, NormalizedEvent
from src.models.request import RequestContext
from src.transform.payload import MAX_EVENT_PARAMS, extract_location, transform_event

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

GRANTED = ConsentDecision(
    ad_user_data=ConsentValue.GRANTED,
    ad_personalization=ConsentValue.GRANTED,
    reason="button_click",
)
DENIED = ConsentDecision()


@pytest.fixture
def request_context() -> RequestContext:
    """Context of a regular browser request."""
    return RequestContext(
        client_ip="203.0.113.9",
        headers={"user-agent": CHROME_UA, "accept-language": "nl-NL,nl;q=0.9"},
        correlation_id="corr-1",
    )


@pytest.fixture
def page_view() -> NormalizedEvent:
    """Attributed page view with location and device params."""
    return NormalizedEvent(
        name="page_view",
        client_id="1234567890.1731322800",
        session_id="1731322800",
        timestamp=1731322800123,
        params={
            "session_id": "1731322800",
            "page_location": "https://example.com/",
            "geo_city": "amsterdam",
            "geo_country": "Netherlands",
            "geo_region": "Noord-Holland",
            "screen_resolution": "1920x1080",
            "user_id": "user-42",
            "isCompleteData": True,
            "source": "google",
            "medium": "organic",
            "empty": None,
        },
    )


def test_granted_payload_shape(page_view, request_context) -> None:
    """Test the payload produced with full consent."""
    payload = transform_event(page_view, GRANTED, request_context)

    assert payload.client_id == "1234567890.1731322800"
    assert payload.user_id == "user-42"
    assert payload.timestamp_micros == 1731322800123000
    assert payload.ip_override == "203.0.113.9"
    assert payload.user_agent == CHROME_UA
    assert payload.consent == {"ad_user_data": "GRANTED", "ad_personalization": "GRANTED"}
    assert payload.user_location.city == "Amsterdam"
    assert payload.user_location.country_id == "NL"
    assert payload.user_location.region_id == "NL-NH"
    assert payload.user_location.continent_id == "150"
    assert payload.device.category == "desktop"
    assert payload.device.language == "nl"
    assert payload.device.screen_resolution == "1920x1080"


def test_moved_params_removed(page_view, request_context) -> None:
    """Test that location, device and identity params leave the event."""
    params = transform_event(page_view, GRANTED, request_context).events[0].params

    for key in ("geo_city", "geo_country", "screen_resolution", "user_id", "isCompleteData", "empty"):
        assert key not in params
    assert params["page_location"] == "https://example.com/"
    assert params["engagement_time_msec"] == 1000
    assert params["consent"].startswith("ad_personalization: GRANTED")


def test_existing_engagement_time_kept(page_view, request_context) -> None:
    """Test that a reported engagement time is not overwritten."""
    event = page_view.model_copy(
        update={"params": {**page_view.params, "engagement_time_msec": 4200}}
    )

    params = transform_event(event, GRANTED, request_context).events[0].params

    assert params["engagement_time_msec"] == 4200


def test_denied_payload_redacted(page_view, request_context) -> None:
    """Test that denied consent strips identifiers and coarsens data."""
    payload = transform_event(page_view, DENIED, request_context)

    assert payload.client_id == "session_1731322800"
    assert payload.user_id is None
    assert payload.ip_override is None
    assert payload.user_location.city is None
    assert payload.user_location.continent_id == "150"
    assert payload.device.screen_resolution == "desktop"
    assert "120.0" not in payload.user_agent
    assert payload.consent == {"ad_user_data": "DENIED", "ad_personalization": "DENIED"}


def test_to_wire_omits_empty_fields(request_context) -> None:
    """Test that the wire body has no null fields."""
    event = NormalizedEvent(name="scroll", client_id="c", timestamp=1, params={})

    wire = transform_event(event, GRANTED, RequestContext()).to_wire()

    assert "user_id" not in wire
    assert "ip_override" not in wire
    assert "user_location" not in wire
    assert wire["events"][0]["name"] == "scroll"


def test_too_many_parameters(request_context) -> None:
    """Test that more than 25 params raises and is recorded."""
    params = {f"custom_{i}": i for i in range(MAX_EVENT_PARAMS)}
    event = NormalizedEvent(name="custom", client_id="c", timestamp=1, params=params)

    with patch("src.transform.payload.record_transform_error") as mock_record:
        with pytest.raises(TooManyParametersError) as exc_info:
            transform_event(event, GRANTED, request_context)

    # 25 custom params plus consent and engagement_time_msec
    assert exc_info.value.param_count == MAX_EVENT_PARAMS + 2
    assert exc_info.value.status_code == 400
    mock_record.assert_called_once()
    assert mock_record.call_args[1]["correlation_id"] == "corr-1"


def test_exactly_at_limit_is_accepted(request_context) -> None:
    """Test that 25 params after transformation are accepted."""
    params = {f"custom_{i}": i for i in range(MAX_EVENT_PARAMS - 2)}
    event = NormalizedEvent(name="custom", client_id="c", timestamp=1, params=params)

    payload = transform_event(event, GRANTED, request_context)

    assert len(payload.events[0].params) == MAX_EVENT_PARAMS


def test_extract_location_from_timezone_only() -> None:
    """Test continent inference from the timezone."""
    location = extract_location({"timezone": "America/Chicago"})

    assert location.country_id is None
    assert location.continent_id == "019"
    assert location.subcontinent_id == "021"


def test_extract_location_none_without_data() -> None:
    """Test that events without location data get no location."""
    assert extract_location({"page_title": "Home"}) is None


def numeric_client_fields_event() -> NormalizedEvent:
    return NormalizedEvent(
        name="page_view",
        client_id="1234567890.1731322800",
        session_id="1731322800",
        timestamp=1731322800123,
        params={"session_id": "1731322800", "timezone": 5, "user_agent": 12345},
    )


def test_non_string_user_agent_falls_back_to_header(request_context) -> None:
    """Test that a numeric user_agent param is replaced by the request header."""
    payload = transform_event(numeric_client_fields_event(), GRANTED, request_context)

    assert payload.user_agent == CHROME_UA
    assert payload.device.browser == "Chrome"
    assert payload.user_location is None


def test_non_string_timezone_with_denied_consent(request_context) -> None:
    """Test that a numeric timezone falls back to the default continent."""
    payload = transform_event(numeric_client_fields_event(), DENIED, request_context)

    assert payload.client_id == "session_1731322800"
    assert payload.user_location.continent_id == "150"
    assert payload.user_location.subcontinent_id == "155"


def test_transform_is_deterministic(page_view, request_context) -> None:
    """Test that the same input always produces the same payload."""
    first = transform_event(page_view, DENIED, request_context).to_wire()
    second = transform_event(page_view, DENIED, request_context).to_wire()

    assert first == second
