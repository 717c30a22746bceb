"""Consent parsing and consent-driven redaction policies.

Two independent policies act on a ``TransformedPayload``:

- ``apply_user_data_policy`` when ``ad_user_data`` is DENIED
- ``apply_personalization_policy`` when ``ad_personalization`` is DENIED

Both return a new payload, are idempotent, and touch disjoint fields, so
they can be applied in either order.
"""

import re
from typing import Any

from src.models.event import (
    ConsentDecision,
    ConsentValue,
    DeviceInfo,
    TransformedPayload,
    UserLocation,
)
from src.transform.device import DEVICE_PARAMS, generalize_device
from src.transform.geo import DEFAULT_CONTINENT, LOCATION_PARAMS, continent_for_timezone

DENIED_MARKER = "(denied consent)"

# Campaign values that carry no advertising information
NON_PAID_CAMPAIGNS = frozenset({"(organic)", "(direct)", "(not set)", "(referral)"})
PAID_MEDIUMS = frozenset({"cpc", "ppc", "paidsearch", "display", "banner", "cpm"})
PAID_TRAFFIC_TYPES = frozenset({"paid_search", "paid_social", "display", "cpc"})
AD_IDENTIFIER_PARAMS = (
    "gclid",
    "content",
    "term",
    "originalGclid",
    "originalContent",
    "originalTerm",
)

_TRUTHY = {"granted", "true", "1", "yes", "allow", "allowed", "accept", "accepted"}

_VERSION = re.compile(r"\d+\.\d+[\.\d]*")
_PARENTHESES = re.compile(r"\([^)]*\)")
USER_AGENT_MAX_LENGTH = 100


def _consent_value(raw: Any) -> ConsentValue:
    """Interpret one consent dimension; anything unrecognised is DENIED."""
    if isinstance(raw, bool):
        return ConsentValue.GRANTED if raw else ConsentValue.DENIED
    if isinstance(raw, str) and raw.strip().lower() in _TRUTHY:
        return ConsentValue.GRANTED
    return ConsentValue.DENIED


def parse_consent(raw: Any) -> ConsentDecision:
    """
    Build a ConsentDecision from client-supplied consent data.

    Args:
        raw: Consent object from the request (may be None or malformed)

    Returns:
        ConsentDecision; both dimensions DENIED when data is missing
    """
    if not isinstance(raw, dict) or not raw:
        return ConsentDecision(reason="missing_data")

    reason = raw.get("consent_reason") or raw.get("reason") or "button_click"
    return ConsentDecision(
        ad_user_data=_consent_value(raw.get("ad_user_data")),
        ad_personalization=_consent_value(raw.get("ad_personalization")),
        reason=str(reason),
    )


def anonymize_user_agent(user_agent: str | None) -> str | None:
    """
    Strip identifying detail from a user-agent string.

    Version numbers become ``x.x``, parenthesised system details become
    ``(anonymous)`` and the result is capped at 100 characters.
    """
    if not user_agent:
        return user_agent
    anonymized = _VERSION.sub("x.x", user_agent)
    anonymized = _PARENTHESES.sub("(anonymous)", anonymized)
    return anonymized[:USER_AGENT_MAX_LENGTH]


def session_client_id(client_id: str, session_id: Any, timestamp_micros: int | None) -> str:
    """Return a session-scoped synthetic client id."""
    if client_id.startswith("session_"):
        return client_id
    if session_id not in (None, ""):
        return f"session_{session_id}"
    return f"session_{(timestamp_micros or 0) // 1000}"


def _coarse_location(payload: TransformedPayload, params: dict[str, Any]) -> UserLocation:
    ids = continent_for_timezone(params.get("timezone"))
    if ids is None and payload.user_location and payload.user_location.continent_id:
        ids = (payload.user_location.continent_id, payload.user_location.subcontinent_id)
    continent_id, subcontinent_id = ids or DEFAULT_CONTINENT
    return UserLocation(continent_id=continent_id, subcontinent_id=subcontinent_id)


def apply_user_data_policy(payload: TransformedPayload) -> TransformedPayload:
    """
    Remove precise identifiers (ad_user_data DENIED).

    Args:
        payload: Payload to redact (not modified)

    Returns:
        New payload without user id, persistent client id, precise location,
        detailed device data, full user agent or IP override
    """
    event = payload.events[0]
    params = {
        key: value
        for key, value in event.params.items()
        if key != "user_id" and key not in LOCATION_PARAMS and key not in DEVICE_PARAMS
    }

    device = None
    if payload.device is not None:
        device = DeviceInfo(**generalize_device(payload.device.model_dump(exclude_none=True)))

    return payload.model_copy(
        update={
            "client_id": session_client_id(
                payload.client_id, params.get("session_id"), payload.timestamp_micros
            ),
            "user_id": None,
            "user_location": _coarse_location(payload, params),
            "device": device,
            "user_agent": anonymize_user_agent(payload.user_agent),
            "ip_override": None,
            "events": [event.model_copy(update={"params": params})] + payload.events[1:],
        }
    )


def _deny_paid_pair(params: dict[str, Any], source_key: str, medium_key: str) -> None:
    medium = params.get(medium_key)
    if isinstance(medium, str) and medium.lower() in PAID_MEDIUMS:
        params[source_key] = DENIED_MARKER
        params[medium_key] = DENIED_MARKER


def apply_personalization_policy(payload: TransformedPayload) -> TransformedPayload:
    """
    Remove advertising attribution detail (ad_personalization DENIED).

    Args:
        payload: Payload to redact (not modified)

    Returns:
        New payload with click ids and ad content removed and paid
        campaign/source/medium/traffic type replaced by a denial marker
    """
    event = payload.events[0]
    params = {
        key: value
        for key, value in event.params.items()
        if key not in AD_IDENTIFIER_PARAMS
    }

    for key in ("campaign", "originalCampaign"):
        if key in params and params[key] not in NON_PAID_CAMPAIGNS:
            params[key] = DENIED_MARKER

    _deny_paid_pair(params, "source", "medium")
    _deny_paid_pair(params, "originalSource", "originalMedium")

    for key in ("traffic_type", "originalTrafficType"):
        value = params.get(key)
        if isinstance(value, str) and value.lower() in PAID_TRAFFIC_TYPES:
            params[key] = DENIED_MARKER

    return payload.model_copy(
        update={"events": [event.model_copy(update={"params": params})] + payload.events[1:]}
    )


def apply_consent(payload: TransformedPayload, consent: ConsentDecision) -> TransformedPayload:
    """Apply whichever redaction policies the consent decision requires."""
    if not consent.user_data_granted:
        payload = apply_user_data_policy(payload)
    if not consent.personalization_granted:
        payload = apply_personalization_policy(payload)
    return payload
