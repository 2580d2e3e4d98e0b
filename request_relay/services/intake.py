"""
Request Intake

Entry point for new requests: assigns an id, persists the record and hands
the intent to the pipeline.

    immediate (no schedule, past schedule, or execute_now) -> perform topic, status "pending"
    future schedule                                        -> plan topic, status "scheduled"

The record is persisted before publishing. If publishing fails the record
stays as persisted and TransportError reaches the caller.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from request_relay.core.config.constants import RequestStatus, Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.interfaces.message_bus import MessageBus
from request_relay.core.interfaces.request_store import RequestStore
from request_relay.core.logging import get_logger
from request_relay.models.intent import RequestIntent
from request_relay.models.record import RequestRecord

logger = get_logger(__name__)


class RequestIntake:
    def __init__(
        self,
        bus: MessageBus,
        store: RequestStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.settings = settings or get_settings()
        self._bus = bus
        self._store = store
        self._clock = clock
        self._id_factory = id_factory

    async def submit(
        self,
        tenant_id: str,
        name: str,
        method: str,
        url: str,
        headers: dict[str, Any] | None = None,
        body: Any = None,
        schedule: datetime | str | None = None,
        execute_now: bool = False,
    ) -> RequestRecord:
        """
        Accept a request for immediate or scheduled execution.

        Returns:
            The persisted record

        Raises:
            InvalidIntentError: name / method / url missing or method unknown
            TransportError: the intent could not be published
        """
        intent = RequestIntent.from_message(
            {
                "id": self._id_factory(),
                "tenantId": tenant_id,
                "name": name,
                "method": method,
                "url": url,
                "headers": headers,
                "body": body,
                "schedule": schedule,
            }
        )

        now = self._clock()
        immediate = execute_now or intent.is_immediate(now)
        status = RequestStatus.PENDING if immediate else RequestStatus.SCHEDULED

        record = RequestRecord.from_intent(intent, status, now)
        await self._store.create(record)

        bus = self.settings.bus
        if immediate:
            await self._bus.publish(
                tenant_id,
                bus.PERFORM_REQUEST_EXCHANGE,
                intent.without_schedule().to_message(),
                bus.PERFORM_REQUEST_ROUTING_KEY,
            )
        else:
            await self._bus.publish(
                tenant_id,
                bus.PLAN_REQUEST_JOB_EXCHANGE,
                intent.to_message(),
                bus.SCHEDULE_ROUTING_KEY,
            )

        logger.info(
            "Request submitted",
            stage=Stage.INTAKE_SUBMIT,
            request_id=intent.id,
            tenant_id=tenant_id,
            status=status.value,
            schedule=intent.schedule.isoformat() if intent.schedule else None,
        )
        return record
