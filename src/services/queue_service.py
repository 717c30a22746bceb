"""Durable queue service: enqueueing, scheduled processing and retention."""

import asyncio
import time
import uuid
from collections import deque
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field, ValidationError

from src.config import settings
from src.crypto.envelope import decrypt_permanent, encrypt_permanent
from src.exceptions import EnvelopeError, TooManyParametersError
from src.logging.config import get_logger
from src.logging.records import record_queue_transition
from src.models.event import ConsentDecision, NormalizedEvent
from src.models.queue import QueuedEvent, QueueEntry, QueueStatus
from src.models.request import RequestContext
from src.repositories.queue_repository import QueueRepository, utc_now_iso
from src.services.delivery_client import DeliveryClient, DeliveryOutcome
from src.transform.payload import transform_event

logger = get_logger(__name__)

PURGE_INTERVAL_SECONDS = 24 * 60 * 60
PURGE_PAGE_SIZE = 1000
RECENT_RUNS_KEPT = 10


class ProcessingReport(BaseModel):
    """Summary of one processing run."""

    skipped: bool = False
    fetched: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    not_claimed: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    started_at: str = Field(default_factory=utc_now_iso)


class PurgeReport(BaseModel):
    """Entries removed by one retention sweep."""

    completed_deleted: int = 0
    failed_deleted: int = 0
    excess_deleted: int = 0

    @property
    def total(self) -> int:
        return self.completed_deleted + self.failed_deleted + self.excess_deleted


def _iso(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


class QueueService:
    """
    Service layer for the durable event queue.

    One instance owns the processing lock, so overlapping runs inside a
    process are skipped; conditional status updates keep separate
    processes from claiming the same entry.
    """

    def __init__(
        self,
        repository: QueueRepository | None = None,
        delivery_client: DeliveryClient | None = None,
    ) -> None:
        """
        Initialize QueueService.

        Args:
            repository: QueueRepository instance (creates new if None)
            delivery_client: DeliveryClient instance (creates new if None)
        """
        self.repository = repository or QueueRepository()
        self.delivery_client = delivery_client or DeliveryClient()
        self._lock = asyncio.Lock()
        self._current_run: str | None = None
        self._last_purge: float | None = None
        self.recent_runs: deque[ProcessingReport] = deque(maxlen=RECENT_RUNS_KEPT)

    # Enqueueing

    def encode_payload(self, queued: QueuedEvent) -> tuple[str, bool]:
        """Serialize a queued event, encrypting it when encryption is enabled."""
        data = queued.model_dump(mode="json")
        if settings.encryption_enabled and settings.encryption_key:
            return encrypt_permanent(data, settings.encryption_key), True
        return queued.model_dump_json(), False

    def decode_payload(self, entry: QueueEntry) -> QueuedEvent:
        """
        Restore the queued event of an entry.

        Raises:
            EnvelopeError: If an encrypted payload cannot be opened
            ValidationError: If the payload does not describe a queued event
        """
        if entry.is_encrypted:
            if not settings.encryption_key:
                raise EnvelopeError("Entry is encrypted but no encryption key is configured")
            return QueuedEvent.model_validate(decrypt_permanent(entry.payload, settings.encryption_key))
        return QueuedEvent.model_validate_json(entry.payload)

    async def enqueue(
        self,
        events: list[NormalizedEvent],
        consent: ConsentDecision,
        context: RequestContext,
        timestamp: int | None = None,
    ) -> tuple[str, list[QueueEntry]]:
        """
        Store one pending entry per event.

        Args:
            events: Attributed events of one request
            consent: Consent decision of the request
            context: Originating request context
            timestamp: Request timestamp in epoch milliseconds

        Returns:
            Tuple of (batch_id, created entries)
        """
        batch_id = str(uuid.uuid4())
        created_at = utc_now_iso()
        entries = []
        for event in events:
            payload, is_encrypted = self.encode_payload(
                QueuedEvent(
                    event=event,
                    consent=consent,
                    timestamp=timestamp or event.timestamp,
                    correlation_id=context.correlation_id,
                )
            )
            entries.append(
                QueueEntry(
                    id=str(uuid.uuid4()),
                    batch_id=batch_id,
                    payload=payload,
                    is_encrypted=is_encrypted,
                    original_headers=context.essential_headers(),
                    client_ip=context.client_ip,
                    created_at=created_at,
                )
            )

        await self.repository.create_many(entries)
        for entry in entries:
            record_queue_transition(entry.id, None, QueueStatus.PENDING.value, batch_id=batch_id)

        logger.info(
            "Events queued",
            extra={
                "correlation_id": context.correlation_id,
                "context": {"batch_id": batch_id, "event_count": len(entries)},
            },
        )
        return batch_id, entries

    # Processing

    def is_processing(self) -> bool:
        return self._lock.locked()

    def force_release_lock(self) -> bool:
        """
        Release the processing lock regardless of its holder.

        Returns:
            True if a lock was released
        """
        if not self._lock.locked():
            return False
        logger.warning("Processing lock force-released", extra={"context": {"run_id": self._current_run}})
        self._current_run = None
        self._lock.release()
        return True

    async def process_queue(self) -> ProcessingReport:
        """
        Run one processing pass over pending entries.

        Returns immediately with ``skipped=True`` when a pass is running.

        Returns:
            ProcessingReport with per-outcome counts
        """
        if self._lock.locked():
            logger.info("Queue processing already running, skipping")
            return ProcessingReport(skipped=True)

        await self._lock.acquire()
        run_id = str(uuid.uuid4())
        self._current_run = run_id
        report = ProcessingReport()
        started = time.perf_counter()
        try:
            entries = await self.repository.list_by_status(
                QueueStatus.PENDING, limit=settings.queue_batch_size
            )
            report.fetched = len(entries)
            semaphore = asyncio.Semaphore(max(1, settings.queue_worker_concurrency))

            async def worker(entry: QueueEntry) -> str:
                async with semaphore:
                    return await self._process_entry_safely(entry)

            for outcome in await asyncio.gather(*(worker(entry) for entry in entries)):
                setattr(report, outcome, getattr(report, outcome) + 1)
        finally:
            report.duration_seconds = round(time.perf_counter() - started, 3)
            self.recent_runs.append(report)
            if self._current_run == run_id and self._lock.locked():
                self._current_run = None
                self._lock.release()

        logger.info("Queue processing completed", extra={"context": report.model_dump()})
        return report

    async def _process_entry_safely(self, entry: QueueEntry) -> str:
        try:
            return await self.process_entry(entry)
        except Exception as e:
            logger.exception(
                f"Unexpected error processing queue entry: {e}",
                extra={"context": {"entry_id": entry.id}},
            )
            await self._retry_or_fail(entry, f"Unexpected error: {e}")
            return "errors"

    async def process_entry(self, entry: QueueEntry) -> str:
        """
        Claim, transform and deliver one entry.

        Args:
            entry: Pending entry

        Returns:
            Name of the report counter to increment
        """
        claimed = await self.repository.transition(entry.id, QueueStatus.PENDING, QueueStatus.PROCESSING)
        if claimed is None:
            return "not_claimed"
        record_queue_transition(
            claimed.id, "pending", "processing", claimed.retry_count, batch_id=claimed.batch_id
        )

        try:
            queued = self.decode_payload(claimed)
        except (EnvelopeError, ValidationError, ValueError) as e:
            return await self._fail(claimed, f"Payload decode failed: {e}")

        context = RequestContext(
            client_ip=claimed.client_ip,
            headers=claimed.original_headers,
            correlation_id=queued.correlation_id,
        )
        try:
            payload = transform_event(queued.event, queued.consent, context)
        except TooManyParametersError as e:
            return await self._fail(claimed, e.message)

        result = await self.delivery_client.send(payload, claimed.original_headers)

        if result.outcome is DeliveryOutcome.SUCCESS:
            await self._move(
                claimed,
                QueueStatus.COMPLETED,
                final_payload=payload.to_wire(),
                ttl=self._ttl(settings.queue_retention_days),
            )
            return "completed"

        if result.outcome is DeliveryOutcome.RETRYABLE:
            return await self._retry_or_fail(claimed, result.error)

        return await self._fail(claimed, result.error)

    async def _retry_or_fail(self, entry: QueueEntry, error: str | None) -> str:
        """Count one failed attempt; back to pending below the ceiling, else failed."""
        retry_count = entry.retry_count + 1
        if retry_count < settings.queue_retry_ceiling:
            await self._move(entry, QueueStatus.PENDING, retry_count=retry_count, error_message=error)
            return "retried"
        return await self._fail(entry, error, retry_count=retry_count)

    def _ttl(self, days: int) -> int:
        return int(time.time()) + days * 24 * 60 * 60

    async def _move(self, entry: QueueEntry, status: QueueStatus, **fields) -> None:
        await self.repository.transition(entry.id, QueueStatus.PROCESSING, status, **fields)
        retry_count = fields.get("retry_count")
        record_queue_transition(
            entry.id,
            QueueStatus.PROCESSING.value,
            status.value,
            entry.retry_count if retry_count is None else retry_count,
            fields.get("error_message"),
            entry.batch_id,
        )

    async def _fail(self, entry: QueueEntry, error: str | None, retry_count: int | None = None) -> str:
        await self._move(
            entry,
            QueueStatus.FAILED,
            retry_count=retry_count,
            error_message=error or "Delivery failed",
            ttl=self._ttl(settings.queue_failed_retention_days),
        )
        return "failed"

    # Retention

    async def _delete_older_than(self, status: QueueStatus, cutoff: datetime) -> int:
        deleted = 0
        while True:
            entries = await self.repository.list_by_status(
                status, limit=PURGE_PAGE_SIZE, created_before=_iso(cutoff)
            )
            for entry in entries:
                await self.repository.delete(entry.id)
            deleted += len(entries)
            if len(entries) < PURGE_PAGE_SIZE:
                return deleted

    async def purge_expired(self, now: datetime | None = None) -> PurgeReport:
        """
        Delete terminal entries past their retention.

        Completed entries older than ``queue_retention_days`` and failed
        entries older than ``queue_failed_retention_days`` are removed, then
        the oldest completed entries beyond ``queue_max_completed``.

        Args:
            now: Reference time (defaults to the clock)

        Returns:
            PurgeReport with deletion counts
        """
        now = now or datetime.now(UTC)
        report = PurgeReport(
            completed_deleted=await self._delete_older_than(
                QueueStatus.COMPLETED, now - timedelta(days=settings.queue_retention_days)
            ),
            failed_deleted=await self._delete_older_than(
                QueueStatus.FAILED, now - timedelta(days=settings.queue_failed_retention_days)
            ),
        )

        excess = await self.repository.count_by_status(QueueStatus.COMPLETED) - settings.queue_max_completed
        if excess > 0:
            oldest = await self.repository.list_by_status(QueueStatus.COMPLETED, limit=excess)
            for entry in oldest:
                await self.repository.delete(entry.id)
            report.excess_deleted = len(oldest)

        logger.info("Queue retention sweep completed", extra={"context": report.model_dump()})
        return report

    # Operator views

    async def get_stats(self) -> dict[str, int]:
        """Return entry counts by status plus the total."""
        stats = {
            status.value: await self.repository.count_by_status(status) for status in QueueStatus
        }
        stats["total"] = sum(stats.values())
        return stats

    async def get_recent(self, limit: int = 20) -> list[QueueEntry]:
        """Return the most recently created entries across all statuses."""
        entries: list[QueueEntry] = []
        for status in QueueStatus:
            entries.extend(
                await self.repository.list_by_status(status, limit=limit, oldest_first=False)
            )
        entries.sort(key=lambda entry: entry.created_at, reverse=True)
        return entries[:limit]

    # Scheduling

    async def run_scheduler(self, stop_event: asyncio.Event, interval: float | None = None) -> None:
        """
        Process the queue periodically until ``stop_event`` is set.

        Purging runs at most once a day.

        Args:
            stop_event: Event that ends the loop
            interval: Seconds between runs (defaults to settings)
        """
        interval = interval or settings.queue_interval_seconds
        logger.info("Queue scheduler started", extra={"context": {"interval_seconds": interval}})
        while not stop_event.is_set():
            try:
                await self.process_queue()
                if self._last_purge is None or time.monotonic() - self._last_purge >= PURGE_INTERVAL_SECONDS:
                    await self.purge_expired()
                    self._last_purge = time.monotonic()
            except Exception as e:
                logger.exception(f"Queue scheduler run failed: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Queue scheduler stopped")
