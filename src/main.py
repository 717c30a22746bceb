"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from src.config import settings
from src.exceptions import CollectorError
from src.handlers.exception_handler import (
    collector_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from src.logging.config import configure_logging, get_logger
from src.middleware.logging import LoggingMiddleware
from src.middleware.request_validation import RequestSizeValidationMiddleware
from src.routes import collect, status
from src.services.dependencies import get_queue_service

# Configure logging before creating the app
configure_logging()
logger = get_logger(__name__)

SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the in-process queue scheduler when enabled."""
    stop_event = asyncio.Event()
    scheduler_task = None
    if settings.queue_scheduler_enabled:
        scheduler_task = asyncio.create_task(get_queue_service().run_scheduler(stop_event))

    yield

    if scheduler_task:
        stop_event.set()
        try:
            await asyncio.wait_for(scheduler_task, timeout=SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Queue scheduler did not stop gracefully, cancelling")
            scheduler_task.cancel()


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
## Server-Side Analytics Collector

Receives analytics events from browsers and forwards them to the GA4
Measurement Protocol from the server.

### Pipeline

1. **Intake**: single events, legacy-wrapped events and batches are normalized
2. **Bot filtering**: requests corroborated as automated by two or more
   independent signals are acknowledged but dropped
3. **Consent**: identifiers and advertising data are removed according to the
   visitor's `ad_user_data` / `ad_personalization` choices
4. **Attribution**: session-scoped source/medium resolution; conversions credit
   the session's original traffic source
5. **Queueing**: events are stored durably and delivered by a scheduled worker
   with bounded retries

### Encryption

Bodies may be sent as `{"jwt": "..."}` with `X-Encrypted: true` (AES-256-GCM
inside an HMAC-signed token, 5 minute expiry) or as `{"time_jwt": "..."}` keyed
with a rotating time-slot key.

### Rate Limits

- Default: 100 requests per minute per client IP
- 429 responses include Retry-After header
""",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Register middleware (order matters: last added = outermost layer)
app.add_middleware(RequestSizeValidationMiddleware)
app.add_middleware(LoggingMiddleware)

# Register exception handlers
app.add_exception_handler(CollectorError, collector_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Register routers
app.include_router(collect.router)
app.include_router(status.router)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """
    Root endpoint with API information.

    Returns:
        Dict with welcome message and docs link
    """
    return {
        "message": f"Welcome to {settings.api_title}",
        "version": settings.api_version,
        "docs": "/docs",
        "health": "/status",
    }
