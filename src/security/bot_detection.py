"""Multi-signal bot detection.

Every check is an independent pure function of the request context and the
representative event's params. A request is classified as a bot only when
at least ``bot_signal_threshold`` checks are positive.
"""

from collections.abc import Callable
from typing import Any

from src.config import settings
from src.logging.config import get_logger
from src.models.event import BotVerdict, NormalizedEvent, SignalResult
from src.models.request import RequestContext
from src.security.rules import (
    AUTOMATION_CLIENT_RULES,
    AUTOMATION_HEADERS,
    BOT_ASNS,
    BROWSER_TOKENS,
    CLIENT_BOT_SCORE_LIMIT,
    CLOUD_NETWORKS,
    DATACENTER_LOCATIONS,
    EVENT_CONTENT_RULES,
    GENERIC_CITIES,
    KNOWN_BOT_NETWORKS,
    MAX_SCORE,
    MIN_USER_AGENT_LENGTH,
    PLACEHOLDER_COUNTRIES,
    REFERRER_RULES,
    SCROLL_MILESTONES,
    SIGNAL_WEIGHTS,
    SIMPLE_USER_AGENT,
    SUSPICIOUS_TIMEZONES,
    USER_AGENT_RULES,
    ip_in_networks,
    match_rules,
)
from src.transform.geo import country_to_iso

logger = get_logger(__name__)

BOT_DATA_KEY = "botData"

Check = Callable[[RequestContext, dict[str, Any]], SignalResult]


def _signal(name: str, reasons: list[str], positive: bool | None = None) -> SignalResult:
    positive = bool(reasons) if positive is None else positive
    return SignalResult(
        name=name,
        positive=positive,
        weight=SIGNAL_WEIGHTS[name] if positive else 0,
        reasons=tuple(reasons),
    )


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _bot_data(params: dict[str, Any]) -> dict[str, Any]:
    data = params.get(BOT_DATA_KEY)
    return data if isinstance(data, dict) else {}


def check_user_agent(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Known bot signatures and structurally implausible user agents."""
    user_agent = context.user_agent.strip()
    if len(user_agent) < MIN_USER_AGENT_LENGTH:
        return _signal("user_agent", ["missing_or_short_user_agent"])

    reasons = match_rules(user_agent, USER_AGENT_RULES)
    if len(user_agent.split()) < 2:
        reasons.append("too_few_tokens")
    if SIMPLE_USER_AGENT.match(user_agent):
        reasons.append("plain_words_only")
    if not any(token in user_agent for token in BROWSER_TOKENS):
        reasons.append("no_browser_token")
    return _signal("user_agent", reasons)


def check_geo(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Placeholder countries, generic cities and datacenter locations."""
    country = context.header("cf-ipcountry") or params.get("geo_country")
    city = context.header("cf-ipcity", None)
    if city is None:
        city = params.get("geo_city")

    reasons = []
    country_value = str(country).strip().lower() if country else ""
    if country_value in PLACEHOLDER_COUNTRIES:
        reasons.append("placeholder_country")
    if country_value and city is not None and str(city).strip().lower() in GENERIC_CITIES:
        reasons.append("generic_city")
    if country_value and city:
        iso = (country_to_iso(country_value) or "").lower()
        if (str(city).strip().lower(), iso) in DATACENTER_LOCATIONS:
            reasons.append("datacenter_location")
    return _signal("geo", reasons)


def check_edge_reputation(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Hosting-provider ASNs and edge threat scores."""
    reasons = []
    asn = (context.header("cf-asn") or context.header("x-asn")).strip().upper()
    if asn.removeprefix("AS") in BOT_ASNS:
        reasons.append("bot_asn")

    threat = _number(context.header("cf-threat-score") or context.header("x-threat-score"))
    if threat is not None and threat > settings.bot_threat_score_threshold:
        reasons.append("high_threat_score")
    return _signal("edge_reputation", reasons)


def check_headers(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Missing or automation-typical request headers."""
    reasons = []
    if not context.header("accept-language"):
        reasons.append("missing_accept_language")
    if not context.header("accept-encoding"):
        reasons.append("missing_accept_encoding")
    accept = context.header("accept").strip()
    if not accept or accept == "*/*":
        reasons.append("generic_accept")
    if context.header("connection").lower() == "close":
        reasons.append("connection_close")
    if context.header("from"):
        reasons.append("from_header")
    if "crawler" in context.header("x-forwarded-for").lower():
        reasons.append("crawler_forwarded_for")
    if any(context.header(name) for name in AUTOMATION_HEADERS):
        reasons.append("automation_headers")
    return _signal("headers", reasons, len(reasons) >= settings.bot_header_anomaly_threshold)


def check_telemetry(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Client-side bot telemetry carried in ``botData``."""
    data = _bot_data(params)
    if not data:
        return _signal("telemetry", [])

    reasons = []
    if data.get("webdriver_detected"):
        reasons.append("webdriver_detected")
    if data.get("has_automation_indicators"):
        reasons.append("automation_indicators")
    if "has_javascript" in data and not data["has_javascript"]:
        reasons.append("no_javascript")
    if _number(data.get("hardware_concurrency")) == 0:
        reasons.append("no_hardware_concurrency")
    if "cookie_enabled" in data and not data["cookie_enabled"]:
        reasons.append("cookies_disabled")

    width = _number(data.get("screen_available_width"))
    height = _number(data.get("screen_available_height"))
    if width is not None and height is not None:
        if not (320 <= width <= 7680 and 240 <= height <= 4320):
            reasons.append("invalid_screen_dimensions")

    color_depth = _number(data.get("color_depth"))
    if color_depth is not None and not 16 <= color_depth <= 32:
        reasons.append("invalid_color_depth")

    timezone = data.get("timezone")
    if isinstance(timezone, str) and timezone.lower() in SUSPICIOUS_TIMEZONES:
        reasons.append("suspicious_timezone")

    client_score = _number(data.get("bot_score"))
    if client_score is not None and client_score > CLIENT_BOT_SCORE_LIMIT:
        reasons.append("high_client_bot_score")

    return _signal("telemetry", reasons, len(reasons) >= settings.bot_telemetry_anomaly_threshold)


def check_behavior(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Timing and interaction patterns too regular for a human."""
    data = _bot_data(params)
    reasons = []

    created = _number(data.get("event_creation_time"))
    started = _number(data.get("session_start_time"))
    if created is not None and started is not None and created - started < 1000:
        reasons.append("short_session_duration")

    event_timestamp = _number(params.get("event_timestamp"))
    if event_timestamp is not None and event_timestamp % 1000 == 0:
        reasons.append("round_timestamp")

    engagement = _number(params.get("engagement_time_msec"))
    if engagement is not None and engagement < 100:
        reasons.append("impossible_fast_engagement")

    scrolled = _number(params.get("percent_scrolled"))
    if scrolled is not None and scrolled in SCROLL_MILESTONES:
        reasons.append("perfect_scroll_percentage")

    calculated = _number(data.get("engagement_calculated"))
    if calculated is not None and calculated < 500:
        reasons.append("low_engagement")

    return _signal("behavior", reasons, len(reasons) >= settings.bot_behavior_anomaly_threshold)


def check_event_content(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Automation tokens inside user agents reported by the event itself."""
    data = _bot_data(params)
    reasons = []
    for value in (params.get("user_agent"), data.get("user_agent_full")):
        if isinstance(value, str):
            reasons.extend(
                reason for reason in match_rules(value, EVENT_CONTENT_RULES) if reason not in reasons
            )
    if data.get("wordpress_patterns") or params.get("wordpress_patterns"):
        reasons.append("wordpress_patterns")
    return _signal("event_content", reasons)


def check_known_bot_ip(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Client IP inside a published crawler range."""
    if ip_in_networks(context.client_ip, KNOWN_BOT_NETWORKS):
        return _signal("known_bot_ip", ["known_crawler_ip"])
    return _signal("known_bot_ip", [])


def check_referrer(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Referer pointing at a search results page or a crawler."""
    return _signal("referrer", match_rules(context.header("referer"), REFERRER_RULES))


def check_cloud_network(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Client IP inside a cloud provider range."""
    if ip_in_networks(context.client_ip, CLOUD_NETWORKS):
        return _signal("cloud_network", ["cloud_provider_ip"])
    return _signal("cloud_network", [])


def check_automation_client(context: RequestContext, params: dict[str, Any]) -> SignalResult:
    """Scripted HTTP clients: tool UA, non-JSON body, no Origin or Referer."""
    reasons = []
    if match_rules(context.user_agent, AUTOMATION_CLIENT_RULES):
        reasons.append("automation_user_agent")
    content_type = context.header("content-type").split(";")[0].strip().lower()
    if content_type and content_type != "application/json":
        reasons.append("non_json_content_type")
    if not context.header("origin") and not context.header("referer"):
        reasons.append("missing_origin_and_referer")
    return _signal("automation_client", reasons, len(reasons) >= 2)


DEFAULT_CHECKS: tuple[Check, ...] = (
    check_user_agent,
    check_geo,
    check_edge_reputation,
    check_headers,
    check_telemetry,
    check_behavior,
    check_event_content,
    check_known_bot_ip,
    check_referrer,
    check_cloud_network,
    check_automation_client,
)


class BotDetector:
    """Runs the bot checks and combines them into a verdict."""

    def __init__(self, checks: tuple[Check, ...] = DEFAULT_CHECKS) -> None:
        self.checks = checks

    def evaluate(self, context: RequestContext, event: NormalizedEvent | None = None) -> BotVerdict:
        """
        Judge a request.

        Args:
            context: Request context (headers, client IP)
            event: Representative event of the batch (first event)

        Returns:
            BotVerdict; never a bot when detection is disabled
        """
        if not settings.bot_detection_enabled:
            return BotVerdict(is_bot=False, score=0)

        params = event.params if event is not None else {}
        signals = tuple(check(context, params) for check in self.checks)
        positive = [signal for signal in signals if signal.positive]

        return BotVerdict(
            is_bot=len(positive) >= settings.bot_signal_threshold,
            score=min(MAX_SCORE, sum(signal.weight for signal in positive)),
            reasons=tuple(reason for signal in positive for reason in signal.reasons),
            signals=signals,
        )


def strip_bot_data(events: list[NormalizedEvent]) -> list[NormalizedEvent]:
    """Return the events with client bot telemetry removed from their params."""
    return [
        event.model_copy(
            update={"params": {k: v for k, v in event.params.items() if k != BOT_DATA_KEY}}
        )
        if BOT_DATA_KEY in event.params
        else event
        for event in events
    ]
