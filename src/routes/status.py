"""Health check and queue status endpoints."""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.config import settings
from src.schemas.collect import QueueRunSummary, QueueStatusResponse
from src.services.dependencies import get_queue_service
from src.services.queue_service import QueueService

# Module-level variable to track application start time
_app_start_time = time.time()

router = APIRouter(tags=["Health"])


@router.get("/status")
async def get_status() -> JSONResponse:
    """
    Health check endpoint for monitoring and load balancers.

    Designed to be fast; does not touch the queue store.

    Returns:
        JSONResponse with status, version, and uptime_seconds
    """
    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "version": settings.api_version,
            "uptime_seconds": int(time.time() - _app_start_time),
        },
    )


@router.get("/status/queue", response_model=QueueStatusResponse)
async def get_queue_status(
    queue_service: QueueService = Depends(get_queue_service),
) -> QueueStatusResponse:
    """
    Queue statistics for operators.

    Returns:
        Counts by status, whether a processing run is active, and a
        summary of the most recent runs
    """
    stats = await queue_service.get_stats()
    return QueueStatusResponse(
        **stats,
        is_processing=queue_service.is_processing(),
        recent_runs=[
            QueueRunSummary(**run.model_dump())
            for run in queue_service.recent_runs
            if not run.skipped
        ],
    )
