"""AWS Lambda handlers for the analytics collector.

``lambda_handler`` wraps the FastAPI application with the Mangum adapter so
the intake endpoint runs behind API Gateway. ``queue_handler`` is meant to be
invoked by a scheduled rule (EventBridge) and runs one queue processing pass.

Both handlers are stateless across invocations.
"""

import asyncio

from mangum import Mangum

from src.logging.config import get_logger
from src.main import app
from src.services.dependencies import get_queue_service

logger = get_logger(__name__)

# Mangum converts API Gateway events to ASGI requests and back
# api_gateway_base_path strips the stage name from paths
handler = Mangum(app, lifespan="off", api_gateway_base_path="/v1")


def lambda_handler(event: dict, context: object) -> dict:
    """
    AWS Lambda function handler for API Gateway requests.

    Args:
        event: API Gateway event containing request details
        context: Lambda context object with runtime information

    Returns:
        API Gateway response dict with statusCode, headers, and body
    """
    return handler(event, context)


async def _run_queue(purge: bool) -> dict:
    service = get_queue_service()
    result = {"processing": (await service.process_queue()).model_dump()}
    if purge:
        purge_report = await service.purge_expired()
        result["purge"] = {**purge_report.model_dump(), "total": purge_report.total}
    return result


def queue_handler(event: dict, context: object) -> dict:
    """
    Scheduled Lambda handler that processes pending queue entries.

    Args:
        event: Scheduler event; ``{"purge": true}`` also runs the retention sweep
        context: Lambda context object

    Returns:
        Dict with the processing report (and purge report when requested)
    """
    purge = bool((event or {}).get("purge"))
    result = asyncio.run(_run_queue(purge))
    logger.info("Scheduled queue run finished", extra={"context": result})
    return result
