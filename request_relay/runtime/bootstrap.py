"""
Component Bootstrap

Wires one process: a single RedisConnection shared by the message bus, the
job store and the request store, plus the service each CLI command runs.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from request_relay.core.config.settings import Settings
from request_relay.infrastructure.job_store.redis_job_store import RedisJobStore
from request_relay.infrastructure.message_bus.redis_bus import RedisStreamBus
from request_relay.infrastructure.redis.client import RedisConnection
from request_relay.infrastructure.request_store.redis_request_store import RedisRequestStore
from request_relay.services.executor import RequestExecutor
from request_relay.services.intake import RequestIntake
from request_relay.services.reconciler import CompletionReconciler
from request_relay.services.scheduler import DelayedExecutionScheduler

Callback = Callable[[], Awaitable[None]]


@dataclass
class Components:
    settings: Settings
    connection: RedisConnection
    bus: RedisStreamBus
    job_store: RedisJobStore
    request_store: RedisRequestStore

    @classmethod
    def create(cls, settings: Settings) -> "Components":
        connection = RedisConnection(settings)
        return cls(
            settings=settings,
            connection=connection,
            bus=RedisStreamBus(connection, settings),
            job_store=RedisJobStore(connection, settings),
            request_store=RedisRequestStore(connection),
        )

    def intake(self) -> RequestIntake:
        return RequestIntake(self.bus, self.request_store, self.settings)


@dataclass
class ServiceHandle:
    """
    Shutdown hooks of a running service.

    before_close runs before the bus drains its consumers, after_close once
    the bus is closed and no handler is running any more.
    """
    name: str
    before_close: list[Callback] = field(default_factory=list)
    after_close: list[Callback] = field(default_factory=list)


async def start_scheduler(components: Components) -> ServiceHandle:
    """Recover missed jobs, start ticking, then consume plan messages."""
    scheduler = DelayedExecutionScheduler(components.bus, components.job_store, components.settings)
    await scheduler.start()
    await scheduler.subscribe(components.settings.bus.TENANTS)
    return ServiceHandle("scheduler", before_close=[scheduler.stop])


async def start_executor(components: Components) -> ServiceHandle:
    executor = RequestExecutor(components.bus, components.settings)
    await executor.subscribe(components.settings.bus.TENANTS)
    return ServiceHandle("executor", after_close=[executor.close])


async def start_reconciler(components: Components) -> ServiceHandle:
    reconciler = CompletionReconciler(components.bus, components.request_store, components.settings)
    await reconciler.subscribe(components.settings.bus.TENANTS)
    return ServiceHandle("reconciler")


SERVICES: dict[str, Callable[[Components], Awaitable[ServiceHandle]]] = {
    "scheduler": start_scheduler,
    "executor": start_executor,
    "reconciler": start_reconciler,
}
