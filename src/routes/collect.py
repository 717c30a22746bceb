"""Intake endpoint for browser analytics events."""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request, status

from src.config import settings
from src.crypto.envelope import parse_encrypted_request
from src.exceptions import MalformedRequestError
from src.middleware.logging import request_client_ip
from src.models.request import RequestContext
from src.schemas.collect import CollectAcceptedResponse, CollectFilteredResponse
from src.security.dependencies import enforce_rate_limit, verify_origin
from src.services.dependencies import get_collect_service
from src.services.pipeline import CollectService

router = APIRouter(tags=["Collect"])

_ERROR_EXAMPLE = {
    "status": "error",
    "error_code": "MALFORMED_REQUEST",
    "message": "Missing events array or single event data",
    "details": {},
}


async def read_json_body(request: Request) -> Any:
    """
    Decode the request body as JSON.

    Raises:
        MalformedRequestError: If the body is empty or not valid JSON
    """
    raw = await request.body()
    if not raw:
        raise MalformedRequestError("Request body is empty")
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedRequestError("Invalid JSON body", details={"error": str(e)}) from e


def build_request_context(request: Request) -> RequestContext:
    return RequestContext(
        client_ip=getattr(request.state, "client_ip", None) or request_client_ip(request),
        headers={name.lower(): value for name, value in request.headers.items()},
        correlation_id=getattr(request.state, "correlation_id", None),
    )


@router.post(
    "/collect",
    response_model=CollectAcceptedResponse | CollectFilteredResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(verify_origin), Depends(enforce_rate_limit)],
    responses={
        400: {
            "description": "Malformed request, invalid envelope or too many parameters",
            "content": {"application/json": {"example": _ERROR_EXAMPLE}},
        },
        403: {"description": "Origin not allowed"},
        413: {"description": "Payload too large"},
        429: {"description": "Rate limit exceeded"},
        503: {"description": "Queue store unavailable"},
    },
)
@router.post(
    "/events",
    response_model=CollectAcceptedResponse | CollectFilteredResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(verify_origin), Depends(enforce_rate_limit)],
    include_in_schema=False,
)
async def collect(
    request: Request,
    service: CollectService = Depends(get_collect_service),
) -> CollectAcceptedResponse | CollectFilteredResponse:
    """
    Accept one event, a legacy-wrapped event or a batch of events.

    The body may be encrypted (``{"jwt": ...}`` with ``X-Encrypted: true``,
    or ``{"time_jwt": ...}``). Bot traffic is acknowledged but dropped;
    everything else is queued for delivery (or delivered immediately when
    configured).

    Args:
        request: FastAPI request object
        service: Collect pipeline

    Returns:
        Accepted or filtered response
    """
    body = await read_json_body(request)
    body = parse_encrypted_request(body, request.headers, settings.encryption_key or None)

    outcome = await service.collect(body, build_request_context(request))

    if outcome.filtered:
        return CollectFilteredResponse(
            bot_score=outcome.verdict.score if outcome.verdict else 0,
            events_received=outcome.events_received,
        )
    return CollectAcceptedResponse(
        events_received=outcome.events_received,
        events_queued=outcome.events_queued,
        events_delivered=outcome.events_delivered,
        batch_id=outcome.batch_id,
    )
