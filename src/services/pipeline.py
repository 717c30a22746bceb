"""Request orchestration for the intake endpoint."""

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from src.attribution.resolver import AttributionResolver
from src.config import settings
from src.exceptions import ServiceUnavailableError
from src.intake.normalizer import classify_request, normalize
from src.logging.config import get_logger
from src.logging.records import record_bot_verdict, record_consent_decision
from src.models.event import BotVerdict, ConsentDecision, NormalizedEvent, TransformedPayload
from src.models.request import RequestContext
from src.security.bot_detection import BotDetector, strip_bot_data
from src.services.delivery_client import DeliveryClient, DeliveryOutcome
from src.services.queue_service import QueueService
from src.transform.payload import transform_event

logger = get_logger(__name__)


class CollectOutcome(BaseModel):
    """Result of handling one intake request."""

    events_received: int
    filtered: bool = False
    verdict: BotVerdict | None = None
    events_queued: int = 0
    events_delivered: int = 0
    batch_id: str | None = None


class CollectService:
    """
    Runs an intake request through the pipeline.

    Stages: normalize, bot gate, consent, attribution, transformation, then
    queueing (or immediate delivery). A bot batch stops after the gate.
    """

    def __init__(
        self,
        queue_service: QueueService | None = None,
        delivery_client: DeliveryClient | None = None,
        detector: BotDetector | None = None,
        resolver: AttributionResolver | None = None,
    ) -> None:
        self.delivery_client = delivery_client or DeliveryClient()
        self.queue_service = queue_service or QueueService(delivery_client=self.delivery_client)
        self.detector = detector or BotDetector()
        self.resolver = resolver or AttributionResolver()

    async def collect(self, body: Any, context: RequestContext) -> CollectOutcome:
        """
        Handle one decoded request body.

        Args:
            body: Decoded (and decrypted) JSON body
            context: Request context

        Returns:
            CollectOutcome describing what happened to the events

        Raises:
            MalformedRequestError: If the body is not a valid event request
            TooManyParametersError: If any event exceeds the parameter limit
            ServiceUnavailableError: If the queue store cannot be reached
        """
        intake = normalize(classify_request(body))
        received = len(intake.events)

        verdict = self.detector.evaluate(context, intake.events[0])
        record_bot_verdict(verdict, context.correlation_id, context.client_ip, received)
        if verdict.is_bot:
            return CollectOutcome(events_received=received, filtered=True, verdict=verdict)

        events = strip_bot_data(intake.events)
        record_consent_decision(intake.consent, context.correlation_id)

        events = [self.resolver.resolve(event, intake.donor) for event in events]

        # Every event must transform before anything is queued
        payloads = [transform_event(event, intake.consent, context) for event in events]

        if settings.immediate_delivery:
            return await self._deliver_now(events, payloads, intake.consent, context, intake.timestamp)

        batch_id = await self._enqueue(events, intake.consent, context, intake.timestamp)
        return CollectOutcome(
            events_received=received,
            events_queued=len(events),
            batch_id=batch_id,
            verdict=verdict,
        )

    async def _enqueue(
        self,
        events: list[NormalizedEvent],
        consent: ConsentDecision,
        context: RequestContext,
        timestamp: int,
    ) -> str:
        try:
            batch_id, _ = await self.queue_service.enqueue(events, consent, context, timestamp)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Queue store unavailable: {e}",
                extra={"correlation_id": context.correlation_id},
            )
            raise ServiceUnavailableError(service="dynamodb") from e
        return batch_id

    async def _deliver_now(
        self,
        events: list[NormalizedEvent],
        payloads: list[TransformedPayload],
        consent: ConsentDecision,
        context: RequestContext,
        timestamp: int,
    ) -> CollectOutcome:
        """Deliver right away; only retryable failures are queued."""
        delivered = 0
        retry_later: list[NormalizedEvent] = []
        for event, payload in zip(events, payloads):
            result = await self.delivery_client.send(payload, context.essential_headers())
            if result.outcome is DeliveryOutcome.SUCCESS:
                delivered += 1
            elif result.outcome is DeliveryOutcome.RETRYABLE:
                retry_later.append(event)
            else:
                logger.warning(
                    "Immediate delivery rejected upstream, event dropped",
                    extra={
                        "correlation_id": context.correlation_id,
                        "context": {"event_name": event.name, "error": result.error},
                    },
                )

        batch_id = None
        if retry_later:
            batch_id = await self._enqueue(retry_later, consent, context, timestamp)
        return CollectOutcome(
            events_received=len(events),
            events_queued=len(retry_later),
            events_delivered=delivered,
            batch_id=batch_id,
        )
