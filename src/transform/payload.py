"""Conversion of normalized events into upstream Measurement Protocol payloads."""

from typing import Any

from src.exceptions import TooManyParametersError
from src.logging.config import get_logger
from src.logging.records import record_transform_error
from src.models.event import (
    ConsentDecision,
    DeviceInfo,
    NormalizedEvent,
    TransformedPayload,
    UserLocation,
    WireEvent,
)
from src.models.request import RequestContext
from src.privacy.consent import apply_consent
from src.transform.device import DEVICE_PARAMS, build_device
from src.transform.geo import (
    DEFAULT_CONTINENT,
    LOCATION_PARAMS,
    clean_city,
    continent_for_country,
    continent_for_timezone,
    country_to_iso,
    first_present,
    region_id,
)

logger = get_logger(__name__)

MAX_EVENT_PARAMS = 25
DEFAULT_ENGAGEMENT_TIME_MSEC = 1000

# Params whose content has moved to the payload top level or must not be sent
MOVED_PARAMS = frozenset(
    LOCATION_PARAMS
    + DEVICE_PARAMS
    + ("client_id", "user_id", "user_agent", "botData", "isCompleteData")
)


def extract_location(params: dict[str, Any]) -> UserLocation | None:
    """
    Build the ``user_location`` object from geo params.

    Args:
        params: Event params (not modified)

    Returns:
        UserLocation, or None when the event carries no location data
    """
    city = clean_city(first_present(params, "geo_city", "city", "geo_city_tz"))
    country_id = country_to_iso(first_present(params, "geo_country", "country", "geo_country_tz"))
    region = first_present(params, "geo_region", "region")

    if country_id:
        continent_id, subcontinent_id = continent_for_country(country_id)
    else:
        ids = continent_for_timezone(params.get("timezone"))
        if ids is None and not (city or region or params.get("geo_continent")):
            return None
        continent_id, subcontinent_id = ids or DEFAULT_CONTINENT

    return UserLocation(
        city=city,
        region_id=region_id(region, country_id),
        country_id=country_id,
        continent_id=continent_id,
        subcontinent_id=subcontinent_id,
    )


def _request_header(context: RequestContext | None, name: str) -> str | None:
    if context is None:
        return None
    return context.header(name) or None


def _count_params(params: dict[str, Any]) -> int:
    return sum(1 for value in params.values() if value is not None)


def transform_event(
    event: NormalizedEvent,
    consent: ConsentDecision,
    request_context: RequestContext | None = None,
) -> TransformedPayload:
    """
    Transform one normalized event into an upstream payload.

    Steps, in order: promote identifiers, extract location and device, set
    the user agent and IP override, attach consent, apply the consent
    policies, then drop moved params and enforce the parameter limit.

    Args:
        event: Normalized, attributed event
        consent: Consent decision for the request
        request_context: Originating request (headers, client IP)

    Returns:
        TransformedPayload ready for delivery

    Raises:
        TooManyParametersError: If more than 25 params remain
    """
    params = dict(event.params)
    correlation_id = request_context.correlation_id if request_context else None

    client_id = str(params.get("client_id") or event.client_id)
    user_id = params.get("user_id")

    user_location = extract_location(params)

    user_agent = params.get("user_agent")
    if not isinstance(user_agent, str) or not user_agent:
        user_agent = _request_header(request_context, "user-agent")
    device_fields = build_device(
        params, user_agent, _request_header(request_context, "accept-language")
    )

    ip_override = None
    if consent.user_data_granted and request_context and request_context.client_ip:
        ip_override = request_context.client_ip

    params["consent"] = consent.as_param()
    params.setdefault("engagement_time_msec", DEFAULT_ENGAGEMENT_TIME_MSEC)

    payload = TransformedPayload(
        client_id=client_id,
        user_id=str(user_id) if user_id not in (None, "") else None,
        timestamp_micros=event.timestamp * 1000,
        events=[WireEvent(name=event.name, params=params)],
        consent=consent.as_wire(),
        user_location=user_location,
        device=DeviceInfo(**device_fields) if device_fields else None,
        user_agent=user_agent,
        ip_override=ip_override,
    )

    payload = apply_consent(payload, consent)

    wire_event = payload.events[0]
    cleaned = {
        key: value
        for key, value in wire_event.params.items()
        if key not in MOVED_PARAMS and value is not None
    }
    param_count = _count_params(cleaned)
    if param_count > MAX_EVENT_PARAMS:
        error = TooManyParametersError(param_count, MAX_EVENT_PARAMS, event.name)
        record_transform_error(
            event.name,
            error,
            correlation_id=correlation_id,
            details={"param_count": param_count, "params": sorted(cleaned)},
        )
        raise error

    logger.debug(
        "Event transformed",
        extra={
            "correlation_id": correlation_id,
            "context": {"event_name": event.name, "param_count": param_count},
        },
    )
    return payload.model_copy(
        update={"events": [wire_event.model_copy(update={"params": cleaned})]}
    )
