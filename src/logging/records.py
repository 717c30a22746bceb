"""Structured pipeline records for the observability stream.

Each helper emits one log line with a stable ``record_type`` so that log
processors can route verdicts, consent decisions, transformation errors and
queue transitions without parsing messages.
"""

from typing import Any

from src.logging.config import get_logger
from src.models.event import BotVerdict, ConsentDecision

logger = get_logger("collector.records")


def record_bot_verdict(
    verdict: BotVerdict,
    correlation_id: str | None = None,
    client_ip: str | None = None,
    event_count: int = 1,
) -> None:
    """
    Log a security gate verdict.

    Args:
        verdict: Verdict produced for the request
        correlation_id: Request correlation ID
        client_ip: Resolved client IP
        event_count: Number of events the verdict applies to
    """
    log = logger.warning if verdict.is_bot else logger.info
    log(
        "Bot detected, request filtered" if verdict.is_bot else "Bot check passed",
        extra={
            "correlation_id": correlation_id,
            "record_type": "bot_verdict",
            "context": {
                "is_bot": verdict.is_bot,
                "bot_score": verdict.score,
                "reasons": list(verdict.reasons),
                "positive_signals": verdict.positive_signals,
                "client_ip": client_ip,
                "event_count": event_count,
            },
        },
    )


def record_consent_decision(
    consent: ConsentDecision,
    correlation_id: str | None = None,
    source: str = "request",
) -> None:
    """Log the consent decision applied to a request."""
    logger.info(
        "Consent decision applied",
        extra={
            "correlation_id": correlation_id,
            "record_type": "consent_decision",
            "context": {
                "ad_user_data": consent.ad_user_data.value,
                "ad_personalization": consent.ad_personalization.value,
                "reason": consent.reason,
                "source": source,
            },
        },
    )


def record_transform_error(
    event_name: str,
    error: Exception,
    correlation_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Log an event that could not be transformed into the wire format."""
    logger.error(
        f"Event transformation failed: {error}",
        extra={
            "correlation_id": correlation_id,
            "record_type": "transform_error",
            "context": {
                "event_name": event_name,
                "error_type": type(error).__name__,
                **(details or {}),
            },
        },
    )


def record_queue_transition(
    entry_id: str,
    from_status: str | None,
    to_status: str,
    retry_count: int = 0,
    error_message: str | None = None,
    batch_id: str | None = None,
) -> None:
    """
    Log a queue entry state transition.

    Args:
        entry_id: Queue entry identifier
        from_status: Previous status (None when the entry is created)
        to_status: New status
        retry_count: Retry count after the transition
        error_message: Failure reason, if any
        batch_id: Request batch identifier
    """
    log = logger.warning if to_status == "failed" else logger.info
    log(
        f"Queue entry {from_status or 'new'} -> {to_status}",
        extra={
            "record_type": "queue_transition",
            "context": {
                "entry_id": entry_id,
                "batch_id": batch_id,
                "from_status": from_status,
                "to_status": to_status,
                "retry_count": retry_count,
                "error_message": error_message,
            },
        },
    )
