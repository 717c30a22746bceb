"""Session-scoped traffic attribution.

The resolver keeps one record per session holding the attribution that
opened it (the "original" shadow copy) and applies three transitions:

- new session: attribution comes from the current navigation
- continuing session, non-conversion event: internal navigation
- conversion event: always the session's original attribution
"""

import threading
import time
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel

from src.attribution.rules import (
    CONVERSION_EVENTS,
    CONVERSION_PREFIXES,
    DIRECT_MEDIUMS,
    DISPLAY_MEDIUMS,
    PAID_SEARCH_MEDIUMS,
    PAYMENT_PROVIDER_DOMAINS,
    SEARCH_ENGINES,
    SOCIAL_DOMAINS,
    SOCIAL_MEDIUMS,
    SOCIAL_SOURCES,
)
from src.config import settings
from src.intake.normalizer import DonorSnapshot
from src.logging.config import get_logger
from src.models.event import AttributionContext, NormalizedEvent

logger = get_logger(__name__)

INTERNAL_ATTRIBUTION = AttributionContext(
    source="(internal)",
    medium="internal",
    campaign="(not set)",
    traffic_type="internal",
)

# Current-attribution params rewritten on every event
ATTRIBUTION_PARAMS = ("source", "medium", "campaign", "content", "term", "gclid", "traffic_type")


def referrer_domain(url: Any) -> str | None:
    """Return the lower-cased host of a referrer URL without ``www.``."""
    if not url or not isinstance(url, str):
        return None
    host = urlparse(url if "//" in url else f"//{url}").hostname
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def _domain_matches(domain: str, candidates: tuple[str, ...] | list[str]) -> bool:
    return any(domain == item or domain.endswith("." + item) for item in candidates)


def is_payment_provider(domain: str | None) -> bool:
    return bool(domain) and _domain_matches(domain, PAYMENT_PROVIDER_DOMAINS)


def internal_domains() -> list[str]:
    """Domains treated as same-site navigation."""
    domains = [domain.lower() for domain in settings.internal_domains]
    site = referrer_domain(settings.site_url)
    if site:
        domains.append(site)
    return domains


def is_internal_domain(domain: str | None, internal: list[str] | None = None) -> bool:
    if not domain:
        return False
    return _domain_matches(domain, internal if internal is not None else internal_domains())


def classify_traffic_type(
    source: str | None,
    medium: str | None,
    referrer: str | None = None,
    internal: list[str] | None = None,
) -> str:
    """
    Classify traffic from its source and medium.

    The first matching rule wins: payment referrer, internal, direct,
    organic, paid search, social, email, affiliate, referral, display,
    video, other.

    Args:
        source: Traffic source
        medium: Traffic medium
        referrer: Referrer domain, if known
        internal: Internal domains (defaults to configured ones)

    Returns:
        Traffic type name
    """
    source = (source or "").lower()
    medium = (medium or "").lower()

    if is_payment_provider(referrer):
        return "payment_referrer"
    if source == "(internal)" or medium == "internal" or is_internal_domain(referrer, internal):
        return "internal"
    if source == "(direct)" and medium in DIRECT_MEDIUMS:
        return "direct"
    if medium == "organic":
        return "organic"
    if medium in PAID_SEARCH_MEDIUMS:
        return "paid_search"
    if medium in SOCIAL_MEDIUMS or source in SOCIAL_SOURCES:
        return "social"
    if medium == "email":
        return "email"
    if medium == "affiliate":
        return "affiliate"
    if medium == "referral":
        return "referral"
    if medium in DISPLAY_MEDIUMS:
        return "display"
    if medium == "video":
        return "video"
    return "other"


def _text(params: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def first_touch_attribution(
    params: dict[str, Any], internal: list[str] | None = None
) -> AttributionContext:
    """
    Derive attribution from the current navigation.

    UTM values win, then a Google click id, then the referrer. With none
    of these the visit is direct.

    Args:
        params: Event params (page_referrer, utm_*/source/medium, gclid, ...)
        internal: Internal domains (defaults to configured ones)

    Returns:
        AttributionContext for the navigation
    """
    internal = internal if internal is not None else internal_domains()
    source = _text(params, "utm_source", "source")
    medium = _text(params, "utm_medium", "medium")
    if source == "(internal)" or medium == "internal":
        source = medium = None
    campaign = _text(params, "utm_campaign", "campaign") or "(not set)"
    content = _text(params, "utm_content", "content")
    term = _text(params, "utm_term", "term")
    gclid = _text(params, "gclid")
    referrer = referrer_domain(_text(params, "page_referrer", "referrer"))

    if not source and not medium and referrer:
        if is_payment_provider(referrer):
            source, medium = referrer, "referral"
        elif is_internal_domain(referrer, internal):
            pass
        else:
            for token, engine, engine_medium in SEARCH_ENGINES:
                if token in referrer + ".":
                    source, medium = engine, "cpc" if (engine == "google" and gclid) else engine_medium
                    break
            else:
                for domain, network in SOCIAL_DOMAINS:
                    if _domain_matches(referrer, (domain,)):
                        source, medium = network, "social"
                        break
                else:
                    source, medium = referrer, "referral"

    if gclid and not _text(params, "utm_source") and not _text(params, "utm_medium"):
        if not source or source == "google" or medium in (None, "organic"):
            source, medium = "google", "cpc"

    if not source and not medium:
        source, medium = "(direct)", "none"

    return AttributionContext(
        source=source or "(not set)",
        medium=medium or "(not set)",
        campaign=campaign,
        content=content,
        term=term,
        gclid=gclid,
        traffic_type=classify_traffic_type(source, medium, referrer, internal),
    )


def original_from_params(params: dict[str, Any]) -> AttributionContext | None:
    """Rebuild the original shadow copy from ``original*`` params."""
    source = _text(params, "originalSource")
    medium = _text(params, "originalMedium")
    if not source and not medium:
        return None
    return AttributionContext(
        source=source or "(not set)",
        medium=medium or "(not set)",
        campaign=_text(params, "originalCampaign") or "(not set)",
        content=_text(params, "originalContent"),
        term=_text(params, "originalTerm"),
        gclid=_text(params, "originalGclid"),
        traffic_type=_text(params, "originalTrafficType")
        or classify_traffic_type(source, medium, internal=[]),
    )


def is_conversion_event(name: str) -> bool:
    name = name.lower()
    return name in CONVERSION_EVENTS or name.startswith(CONVERSION_PREFIXES)


class SessionRecord(BaseModel):
    """Attribution state of one session."""

    original: AttributionContext
    started_at: float
    last_seen: float


class SessionAttributionStore:
    """
    In-memory session attribution records with an inactivity expiry.

    All access goes through one lock; state is lost on restart.
    """

    def __init__(self, timeout_seconds: int | None = None, max_sessions: int = 50000) -> None:
        """
        Initialize the store.

        Args:
            timeout_seconds: Inactivity window after which a session expires
            max_sessions: Size above which expired records are pruned
        """
        self.timeout_seconds = timeout_seconds or settings.session_timeout_seconds
        self.max_sessions = max_sessions
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def _expired(self, record: SessionRecord, now: float) -> bool:
        return now - record.last_seen > self.timeout_seconds

    def get(self, session_id: str, now: float) -> SessionRecord | None:
        """Return the active record for a session, touching it."""
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            if self._expired(record, now):
                del self._records[session_id]
                return None
            record.last_seen = now
            return record.model_copy()

    def start(self, session_id: str, original: AttributionContext, now: float) -> SessionRecord:
        """Open (or reopen) a session with its original attribution."""
        record = SessionRecord(original=original, started_at=now, last_seen=now)
        with self._lock:
            if len(self._records) >= self.max_sessions:
                self._prune(now)
            self._records[session_id] = record
        return record.model_copy()

    def _prune(self, now: float) -> None:
        expired = [key for key, record in self._records.items() if self._expired(record, now)]
        for key in expired:
            del self._records[key]

    def clear(self) -> None:
        """Drop every record (useful for testing)."""
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class AttributionResolver:
    """Applies the session attribution state machine to events."""

    def __init__(self, store: SessionAttributionStore | None = None) -> None:
        self.store = store or session_store

    def resolve(
        self,
        event: NormalizedEvent,
        donor: DonorSnapshot | None = None,
        now: float | None = None,
    ) -> NormalizedEvent:
        """
        Resolve the attribution of one event.

        Args:
            event: Normalized event (not modified)
            donor: Batch donor snapshot supplying original attribution
            now: Current time in epoch seconds (defaults to the clock)

        Returns:
            New event whose params carry the resolved current and original
            attribution
        """
        now = time.time() if now is None else now
        donor = donor or DonorSnapshot()
        params = event.params
        internal = internal_domains()

        client_original = original_from_params(params) or original_from_params(
            donor.original_attribution()
        )
        record = self.store.get(event.session_id, now) if event.session_id else None
        conversion = is_conversion_event(event.name)

        if record is None:
            state = "new_session"
            current = first_touch_attribution(params, internal)
            if client_original and current.traffic_type in ("direct", "internal", "payment_referrer"):
                # The client session predates our record; keep its channel
                current = client_original
            original = client_original or current
            if event.session_id:
                self.store.start(event.session_id, original, now)
            if conversion:
                current = original
        elif conversion:
            state = "conversion"
            original = record.original
            current = original
        else:
            state = "continuing_session"
            original = record.original
            current = INTERNAL_ATTRIBUTION

        resolved = {key: value for key, value in params.items() if key not in ATTRIBUTION_PARAMS}
        resolved.update(current.as_params())
        resolved.update(original.as_params("original"))

        logger.debug(
            "Attribution resolved",
            extra={
                "context": {
                    "event_name": event.name,
                    "session_id": event.session_id,
                    "state": state,
                    "source": current.source,
                    "medium": current.medium,
                    "traffic_type": current.traffic_type,
                }
            },
        )
        return event.model_copy(update={"params": resolved})


# Global session store instance
session_store = SessionAttributionStore()
