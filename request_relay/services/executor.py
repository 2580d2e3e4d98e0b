"""
Request Executor

Performs the HTTP call described by a request intent and publishes exactly
one completion outcome for it.

Outcome classification:
    - any HTTP response, including 4xx / 5xx -> status "completed"
    - no response (connect error, timeout, DNS, invalid URL, unencodable
      header) -> status "failed"

The call is made once. Retrying is left to the caller.
"""

import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from request_relay.core.config.constants import OutcomeStatus, Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import ExecutionError, InvalidIntentError, ValidationError
from request_relay.core.interfaces.message_bus import MessageBus, TopicBinding
from request_relay.core.logging import get_logger
from request_relay.models.intent import RequestIntent
from request_relay.models.outcome import CompletionOutcome, ErrorSnapshot, ResponseSnapshot

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _response_data(response: httpx.Response) -> Any:
    """JSON body when it parses, else text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _body_kwargs(body: Any) -> dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, str | bytes):
        return {"content": body}
    return {"json": body}


class RequestExecutor:
    """
    Executes request intents over httpx.

    Usage:
        executor = RequestExecutor(bus)
        outcome = await executor.execute(intent_payload)
        await executor.close()
    """

    def __init__(
        self,
        bus: MessageBus,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self._bus = bus
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self.settings.executor.EXECUTOR_HTTP_TIMEOUT,
            follow_redirects=self.settings.executor.EXECUTOR_FOLLOW_REDIRECTS,
        )
        self._clock = clock

    @property
    def perform_binding(self) -> TopicBinding:
        bus = self.settings.bus
        return TopicBinding(bus.PERFORM_REQUEST_EXCHANGE, bus.PERFORM_REQUEST_ROUTING_KEY, bus.PERFORM_REQUEST_QUEUE)

    async def execute(self, intent: RequestIntent | dict[str, Any]) -> CompletionOutcome:
        """
        Perform the request and publish its outcome.

        Returns:
            The published CompletionOutcome

        Raises:
            InvalidIntentError: intent lacks id, tenantId, name, method or url
                (nothing is published)
            TransportError: the outcome could not be published
        """
        if not isinstance(intent, RequestIntent):
            try:
                intent = RequestIntent.from_message(intent)
            except InvalidIntentError as e:
                logger.error(
                    "Invalid request intent",
                    stage=Stage.EXECUTOR_INVALID,
                    request_id=e.request_id,
                    tenant_id=e.tenant_id,
                    details=e.details,
                )
                raise

        outcome = await self._perform(intent)
        await self._bus.publish(
            intent.tenant_id,
            self.settings.bus.REQUEST_COMPLETED_EXCHANGE,
            outcome.to_message(),
            self.settings.bus.REQUEST_COMPLETED_ROUTING_KEY,
        )
        return outcome

    async def _perform(self, intent: RequestIntent) -> CompletionOutcome:
        logger.info(
            "Executing request",
            stage=Stage.EXECUTOR_START,
            request_id=intent.id,
            tenant_id=intent.tenant_id,
            method=intent.method,
            url=intent.url,
        )
        headers = {str(k): str(v) for k, v in intent.headers.items()}

        # Bad URLs and non-ASCII header values surface here, before any I/O
        try:
            request = self._http.build_request(
                intent.method, intent.url, headers=headers, **_body_kwargs(intent.body)
            )
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            return self._failed_outcome(e, intent, "Request could not be built")

        started = time.perf_counter()
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as e:
            return self._failed_outcome(e, intent, "Request failed without response")

        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info(
            "Request completed",
            stage=Stage.EXECUTOR_RESPONSE,
            request_id=intent.id,
            tenant_id=intent.tenant_id,
            http_status=response.status_code,
            execution_time_ms=elapsed_ms,
        )
        return CompletionOutcome(
            id=intent.id,
            tenant_id=intent.tenant_id,
            status=OutcomeStatus.COMPLETED,
            response=ResponseSnapshot(
                status=response.status_code,
                status_text=response.reason_phrase,
                headers=dict(response.headers),
                data=_response_data(response),
            ),
            execution_time=elapsed_ms,
            completed_at=self._clock(),
        )

    def _failed_outcome(self, exc: Exception, intent: RequestIntent, event: str) -> CompletionOutcome:
        error = self._to_execution_error(exc, intent)
        logger.error(
            event,
            stage=Stage.EXECUTOR_TRANSPORT_FAILURE,
            request_id=intent.id,
            tenant_id=intent.tenant_id,
            error=error.message,
            code=error.code,
        )
        return CompletionOutcome(
            id=intent.id,
            tenant_id=intent.tenant_id,
            status=OutcomeStatus.FAILED,
            error=ErrorSnapshot(**error.to_outcome_error()),
            completed_at=self._clock(),
        )

    @staticmethod
    def _to_execution_error(exc: Exception, intent: RequestIntent) -> ExecutionError:
        snippet = None
        partial = getattr(exc, "response", None)
        if isinstance(partial, httpx.Response):
            snippet = {
                "status": partial.status_code,
                "statusText": partial.reason_phrase,
                "data": _response_data(partial),
            }
        return ExecutionError(
            str(exc) or type(exc).__name__,
            code=type(exc).__name__,
            response=snippet,
            request_id=intent.id,
            tenant_id=intent.tenant_id,
        )

    async def handle_perform_message(self, payload: dict[str, Any]) -> None:
        """Bus handler: invalid intents are dropped, publish failures propagate."""
        try:
            await self.execute(payload)
        except ValidationError:
            return

    async def subscribe(self, tenants: list[str]) -> None:
        for tenant_id in tenants:
            await self._bus.subscribe(tenant_id, self.perform_binding, self.handle_perform_message)

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()
