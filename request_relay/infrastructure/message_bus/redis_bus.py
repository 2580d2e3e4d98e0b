"""
Redis Streams Message Bus

Architecture:
    RedisStreamBus (Public API: connect / publish / subscribe / close)
        ├── StreamBroker (exchanges, queues, bindings and routing on Redis)
        ├── TenantTopology (per-tenant provisioning cache)
        └── ConsumerLoop (one background task per subscription)

Broker mapping:
    - exchange: member of the ``{prefix}:exchanges`` set
    - queue: stream ``{prefix}:queue:{queue}`` with a consumer group named after the queue
    - binding: set ``{prefix}:binding:{exchange}:{routing_key}`` of queue names

Delivery semantics (at-least-once):
    - publish XADDs the payload to every bound queue inside one MULTI/EXEC;
      the EXEC reply is the confirm
    - handled messages and poison messages are XACKed
    - a message whose handler raised stays pending and is redelivered when
      the consumer restarts (pending entries are read before new ones)
"""

import asyncio
import socket
from datetime import datetime, timezone
from typing import Any

from redis.exceptions import RedisError, ResponseError

from request_relay.core.config.constants import DELIVERY_MODE_PERSISTENT, Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import NotConnectedError, PublishError
from request_relay.core.interfaces.message_bus import MessageBus, MessageHandler, TopicBinding
from request_relay.core.logging import bind_request_context, clear_request_context, get_logger
from request_relay.infrastructure.message_bus.envelope import Malformed, decode_envelope, encode_message
from request_relay.infrastructure.message_bus.topology import TenantResources, TenantTopology, scoped_name
from request_relay.infrastructure.redis.client import RedisConnection

logger = get_logger(__name__)


def default_bindings(settings: Settings) -> list[TopicBinding]:
    """The three topic bindings every tenant gets."""
    bus = settings.bus
    return [
        TopicBinding(bus.PERFORM_REQUEST_EXCHANGE, bus.PERFORM_REQUEST_ROUTING_KEY, bus.PERFORM_REQUEST_QUEUE),
        TopicBinding(bus.REQUEST_COMPLETED_EXCHANGE, bus.REQUEST_COMPLETED_ROUTING_KEY, bus.REQUEST_COMPLETED_QUEUE),
        TopicBinding(bus.PLAN_REQUEST_JOB_EXCHANGE, bus.SCHEDULE_ROUTING_KEY, bus.SCHEDULED_REQUESTS_QUEUE),
    ]


# =============================================================================
# LAYER 1: BROKER PRIMITIVES
# Exchange / queue / binding declaration and routing on top of Redis
# =============================================================================


class StreamBroker:
    """
    Direct-exchange semantics over Redis Streams.

    Every operation is idempotent so topology can be declared by any
    process at any time.
    """

    def __init__(self, connection: RedisConnection):
        self._connection = connection

    @property
    def client(self):
        if not self._connection.is_connected or self._connection.client is None:
            raise NotConnectedError("Message bus is not connected")
        return self._connection.client

    def stream_key(self, queue: str) -> str:
        return self._connection.key("queue", queue)

    def binding_key(self, exchange: str, routing_key: str) -> str:
        return self._connection.key("binding", exchange, routing_key)

    async def declare_exchange(self, exchange: str) -> None:
        await self.client.sadd(self._connection.key("exchanges"), exchange)

    async def declare_queue(self, queue: str) -> None:
        """
        Create the queue stream and its consumer group.

        BUSYGROUP means the group already exists, which is expected on
        every declare after the first.
        """
        try:
            await self.client.xgroup_create(self.stream_key(queue), queue, id="0", mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def bind_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        await self.client.sadd(self.binding_key(exchange, routing_key), queue)

    async def route(self, exchange: str, routing_key: str, fields: dict[str, str]) -> list[str]:
        """
        Append the message to every queue bound to (exchange, routing_key).

        Returns:
            Stream entry ids, one per bound queue (empty if unroutable)
        """
        queues = sorted(await self.client.smembers(self.binding_key(exchange, routing_key)))
        if not queues:
            return []
        async with self.client.pipeline(transaction=True) as pipe:
            for queue in queues:
                pipe.xadd(self.stream_key(queue), fields)
            return await pipe.execute()

    async def read(
        self, queue: str, consumer: str, cursor: str, count: int, block_ms: int | None
    ) -> list[tuple[str, dict[str, str]]]:
        """
        XREADGROUP from a queue.

        cursor ">" reads new messages; any other id re-reads this consumer's
        pending entries after that id.
        """
        response = await self.client.xreadgroup(
            queue, consumer, {self.stream_key(queue): cursor}, count=count, block=block_ms
        )
        messages = []
        if response:
            # response format: [[stream_name, [[id, {data}]]]]
            for _stream, entries in response:
                for entry_id, fields in entries:
                    messages.append((entry_id, fields or {}))
        return messages

    async def ack(self, queue: str, entry_id: str) -> None:
        await self.client.xack(self.stream_key(queue), queue, entry_id)


# =============================================================================
# LAYER 2: CONSUMER LOOP
# Continuous consumption of one tenant queue
# =============================================================================


class ConsumerLoop:
    """
    Background consumption of one subscription.

    Messages of one subscription are handled one at a time; different
    subscriptions run as independent tasks and so run in parallel.
    """

    def __init__(
        self,
        broker: StreamBroker,
        tenant_id: str,
        resources: TenantResources,
        handler: MessageHandler,
        consumer_name: str,
        batch_size: int,
        block_ms: int,
        error_backoff: float,
    ):
        self._broker = broker
        self._tenant_id = tenant_id
        self._resources = resources
        self._handler = handler
        self._consumer_name = consumer_name
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._error_backoff = error_backoff
        self._stopping = asyncio.Event()
        self._busy = False
        self.task: asyncio.Task | None = None

    @property
    def queue(self) -> str:
        return self._resources.queue

    @property
    def busy(self) -> bool:
        return self._busy

    def start(self) -> asyncio.Task:
        self.task = asyncio.create_task(self._run(), name=f"consumer:{self.queue}")
        return self.task

    def stop(self) -> None:
        self._stopping.set()

    async def _run(self) -> None:
        await self._drain_pending()
        while not self._stopping.is_set():
            try:
                messages = await self._broker.read(
                    self.queue, self._consumer_name, ">", self._batch_size, self._block_ms
                )
            except RedisError as e:
                logger.error(
                    "Consumer read failed",
                    stage=Stage.BUS_LOOP_ERROR,
                    queue=self.queue,
                    error=str(e),
                )
                await self._backoff()
                continue
            await self._dispatch_batch(messages)

    async def _drain_pending(self) -> None:
        """Redeliver entries this consumer read but never acknowledged."""
        cursor = "0"
        while not self._stopping.is_set():
            try:
                messages = await self._broker.read(
                    self.queue, self._consumer_name, cursor, self._batch_size, None
                )
            except RedisError as e:
                logger.error(
                    "Pending read failed",
                    stage=Stage.BUS_LOOP_ERROR,
                    queue=self.queue,
                    error=str(e),
                )
                await self._backoff()
                continue
            if not messages:
                return
            logger.info(
                "Redelivering pending messages",
                stage=Stage.BUS_DELIVER,
                queue=self.queue,
                count=len(messages),
            )
            await self._dispatch_batch(messages)
            cursor = messages[-1][0]

    async def _backoff(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._error_backoff)
        except asyncio.TimeoutError:
            pass

    async def _dispatch_batch(self, messages: list[tuple[str, dict[str, str]]]) -> None:
        for entry_id, fields in messages:
            # Unhandled entries stay pending for the next start
            if self._stopping.is_set():
                return
            self._busy = True
            try:
                await self._dispatch(entry_id, fields)
            finally:
                self._busy = False

    async def _dispatch(self, entry_id: str, fields: dict[str, str]) -> None:
        decoded = decode_envelope(fields.get("payload"))
        if isinstance(decoded, Malformed):
            logger.error(
                "Dropping malformed message",
                stage=Stage.BUS_POISON,
                queue=self.queue,
                entry_id=entry_id,
                reason=decoded.reason,
            )
            await self._ack(entry_id)
            return

        payload = decoded.payload
        bind_request_context(payload.get("id"), payload.get("tenantId") or self._tenant_id)
        try:
            logger.debug("Message received", stage=Stage.BUS_DELIVER, queue=self.queue, entry_id=entry_id)
            try:
                await self._handler(payload)
            except Exception as e:
                # Left unacknowledged: redelivered on the next consumer start
                logger.error(
                    "Message handler failed",
                    stage=Stage.BUS_HANDLER_ERROR,
                    queue=self.queue,
                    entry_id=entry_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return
            await self._ack(entry_id)
        finally:
            clear_request_context()

    async def _ack(self, entry_id: str) -> None:
        try:
            await self._broker.ack(self.queue, entry_id)
        except RedisError as e:
            logger.error("Acknowledge failed", stage=Stage.BUS_LOOP_ERROR, queue=self.queue, error=str(e))


# =============================================================================
# LAYER 3: PUBLIC API
# =============================================================================


class RedisStreamBus(MessageBus):
    """
    Durable tenant-scoped publish / subscribe over Redis Streams.

    One shared RedisConnection per process. Publishing waits for the
    MULTI/EXEC reply, so a stalled Redis stalls the publishing handler.

    Usage:
        bus = RedisStreamBus()
        await bus.connect()
        await bus.publish("acme", "perform-request", intent.to_message())
        await bus.subscribe("acme", binding, handler)
        ...
        await bus.close()
    """

    def __init__(
        self,
        connection: RedisConnection | None = None,
        settings: Settings | None = None,
        consumer_name: str | None = None,
    ):
        self.settings = settings or get_settings()
        self._connection = connection or RedisConnection(self.settings)
        self._broker = StreamBroker(self._connection)
        self.topology = TenantTopology(self._broker, default_bindings(self.settings))
        # Stable across restarts so pending entries are found again
        self._consumer_name = consumer_name or socket.gethostname()
        self._consumers: list[ConsumerLoop] = []

    @property
    def connection(self) -> RedisConnection:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    async def connect(self) -> None:
        await self._connection.connect()
        logger.info("Message bus connected", stage=Stage.BUS_CONNECT, consumer=self._consumer_name)

    def _require_connection(self) -> None:
        if not self._connection.is_connected:
            raise NotConnectedError("Message bus is not connected; call connect() first")

    async def publish(
        self,
        tenant_id: str,
        topic_base: str,
        message: dict[str, Any],
        routing_key_base: str | None = None,
    ) -> None:
        """
        Publish a persistent message to ``{topic_base}-{tenant}``.

        The routing key is ``{routing_key_base}-{tenant}`` when given, else
        the exchange name itself.

        Raises:
            NotConnectedError: If the bus is not connected
            TopologyError: If tenant resources cannot be provisioned
            PublishError: If Redis rejects the write
        """
        self._require_connection()
        await self.topology.ensure(tenant_id)

        exchange = scoped_name(topic_base, tenant_id)
        routing_key = scoped_name(routing_key_base, tenant_id) if routing_key_base else exchange
        fields = {
            "payload": encode_message(message),
            "delivery_mode": str(DELIVERY_MODE_PERSISTENT),
            "published_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            entry_ids = await self._broker.route(exchange, routing_key, fields)
        except RedisError as e:
            logger.error(
                "Publish failed",
                stage=Stage.BUS_PUBLISH,
                exchange=exchange,
                routing_key=routing_key,
                error=str(e),
            )
            raise PublishError.from_exception(
                e, tenant_id=tenant_id, request_id=message.get("id"), exchange=exchange, routing_key=routing_key
            ) from e

        if not entry_ids:
            logger.warning(
                "Message unroutable, no queue bound",
                stage=Stage.BUS_PUBLISH,
                exchange=exchange,
                routing_key=routing_key,
            )
            return

        logger.info(
            "Message published",
            stage=Stage.BUS_PUBLISH,
            exchange=exchange,
            routing_key=routing_key,
            queues=len(entry_ids),
        )

    async def subscribe(self, tenant_id: str, binding: TopicBinding, handler: MessageHandler) -> None:
        """
        Start consuming ``{queue_base}-{tenant}``.

        Raises:
            NotConnectedError: If the bus is not connected
            TopologyError: If tenant resources cannot be provisioned
        """
        self._require_connection()
        resources = await self.topology.ensure_binding(tenant_id, binding)

        loop = ConsumerLoop(
            self._broker,
            tenant_id,
            resources,
            handler,
            consumer_name=self._consumer_name,
            batch_size=self.settings.bus.BUS_CONSUMER_BATCH_SIZE,
            block_ms=self.settings.bus.BUS_CONSUMER_BLOCK_MS,
            error_backoff=self.settings.bus.BUS_ERROR_BACKOFF_SECONDS,
        )
        loop.start()
        self._consumers.append(loop)

        logger.info(
            "Subscribed",
            stage=Stage.BUS_SUBSCRIBE,
            tenant_id=tenant_id,
            exchange=resources.exchange,
            queue=resources.queue,
            routing_key=resources.routing_key,
        )

    async def close(self) -> None:
        """
        Stop consuming, wait for in-flight handlers, then disconnect.

        Idle consumers are cancelled immediately. Busy ones get
        BUS_SHUTDOWN_TIMEOUT_SECONDS to finish their current message.
        Safe to call when never connected.
        """
        consumers, self._consumers = self._consumers, []
        tasks = [c.task for c in consumers if c.task is not None]

        for consumer in consumers:
            consumer.stop()
            if not consumer.busy and consumer.task is not None:
                consumer.task.cancel()

        if tasks:
            _done, pending = await asyncio.wait(
                tasks, timeout=self.settings.bus.BUS_SHUTDOWN_TIMEOUT_SECONDS
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if pending:
                logger.warning(
                    "Handlers still running at shutdown were cancelled",
                    stage=Stage.BUS_CLOSE,
                    cancelled=len(pending),
                )

        await self._connection.disconnect()
        logger.info("Message bus closed", stage=Stage.BUS_CLOSE, consumers=len(consumers))
