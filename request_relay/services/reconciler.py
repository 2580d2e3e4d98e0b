"""
Completion Reconciler

Applies the terminal lifecycle transition for a completion outcome to the
persisted request record.

Status derivation:
    completed + HTTP 2xx       -> success
    completed + other status   -> failed
    failed                     -> failed (even with a response snippet)
    anything else              -> completed (unclassified)

Invalid outcomes and outcomes for unknown records are logged and dropped.
A record may not exist yet under extreme reordering; that race is accepted.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from request_relay.core.config.constants import OutcomeStatus, RequestStatus, Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import InvalidOutcomeError
from request_relay.core.interfaces.message_bus import MessageBus, TopicBinding
from request_relay.core.interfaces.request_store import RequestStore
from request_relay.core.logging import get_logger
from request_relay.models.outcome import CompletionOutcome

logger = get_logger(__name__)


def derive_status(outcome: CompletionOutcome) -> RequestStatus:
    if outcome.status == OutcomeStatus.COMPLETED and outcome.response is not None and outcome.response.status:
        return RequestStatus.SUCCESS if outcome.response.is_success else RequestStatus.FAILED
    if outcome.status == OutcomeStatus.FAILED:
        return RequestStatus.FAILED
    return RequestStatus.COMPLETED


class CompletionReconciler:
    def __init__(
        self,
        bus: MessageBus,
        store: RequestStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.settings = settings or get_settings()
        self._bus = bus
        self._store = store
        self._clock = clock

    @property
    def completed_binding(self) -> TopicBinding:
        bus = self.settings.bus
        return TopicBinding(
            bus.REQUEST_COMPLETED_EXCHANGE, bus.REQUEST_COMPLETED_ROUTING_KEY, bus.REQUEST_COMPLETED_QUEUE
        )

    async def reconcile(self, outcome: CompletionOutcome | dict[str, Any]) -> RequestStatus | None:
        """
        Apply an outcome to its record.

        Returns:
            The status written, or None when the outcome was dropped
        """
        if not isinstance(outcome, CompletionOutcome):
            try:
                outcome = CompletionOutcome.from_message(outcome)
            except InvalidOutcomeError as e:
                logger.error(
                    "Dropping invalid completion outcome",
                    stage=Stage.RECONCILER_DROP,
                    request_id=e.request_id,
                    tenant_id=e.tenant_id,
                    details=e.details,
                )
                return None

        record = await self._store.find_by_id_and_tenant(outcome.id, outcome.tenant_id)
        if record is None:
            logger.error(
                "Request record not found, dropping outcome",
                stage=Stage.RECONCILER_DROP,
                request_id=outcome.id,
                tenant_id=outcome.tenant_id,
            )
            return None

        status = derive_status(outcome)
        await self._store.update_status_and_response(
            outcome.id, outcome.tenant_id, status, outcome.to_message(), self._clock()
        )

        logger.info(
            "Request status updated",
            stage=Stage.RECONCILER_APPLY,
            request_id=outcome.id,
            tenant_id=outcome.tenant_id,
            status=status.value,
            http_status=outcome.response.status if outcome.response else None,
        )
        return status

    async def handle_completed_message(self, payload: dict[str, Any]) -> None:
        await self.reconcile(payload)

    async def subscribe(self, tenants: list[str]) -> None:
        for tenant_id in tenants:
            await self._bus.subscribe(tenant_id, self.completed_binding, self.handle_completed_message)
