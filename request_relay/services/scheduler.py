"""
Delayed Execution Scheduler

Persists future-dated request intents as durable jobs and publishes each one
to the tenant's perform topic when it comes due.

Architecture:
    DelayedExecutionScheduler (Public API)
        ├── schedule_request()        policy checks + durable job creation
        ├── tick loop                 every SCHEDULER_TICK_SECONDS, fires due jobs
        ├── recover_missed_jobs()     once at start, fires jobs that came due while down
        └── _fire()                   claim -> publish -> remove (or mark failed)

Job lifecycle:
    created -> due -> firing -> removed
    created -> (restart after due) -> recovered and fired -> removed
    firing -> failed (publish error; kept for operators, never retried here)

Tick and recovery share _fire(), whose only precondition is the job store's
atomic claim, so a due job is fired once even when both paths see it.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from request_relay.core.config.constants import Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import (
    MissingScheduleFieldError,
    ScheduleNotInFutureError,
    SchedulingPolicyError,
    ValidationError,
)
from request_relay.core.interfaces.job_store import JobStore
from request_relay.core.interfaces.message_bus import MessageBus, TopicBinding
from request_relay.core.logging import bind_request_context, clear_request_context, get_logger
from request_relay.models.intent import RequestIntent
from request_relay.models.job import ScheduledJob

logger = get_logger(__name__)

Clock = Callable[[], datetime]

REQUIRED_PLAN_FIELDS = ("schedule", "tenantId", "id")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DelayedExecutionScheduler:
    """
    Durable delayed execution with crash recovery.

    Usage:
        scheduler = DelayedExecutionScheduler(bus, job_store)
        await scheduler.start()                 # recovery, then tick loop
        await scheduler.subscribe(["acme"])     # consume plan messages
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        bus: MessageBus,
        job_store: JobStore,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ):
        self.settings = settings or get_settings()
        self._bus = bus
        self._jobs = job_store
        self._clock = clock
        self._tick_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def plan_binding(self) -> TopicBinding:
        bus = self.settings.bus
        return TopicBinding(bus.PLAN_REQUEST_JOB_EXCHANGE, bus.SCHEDULE_ROUTING_KEY, bus.SCHEDULED_REQUESTS_QUEUE)

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def schedule_request(self, intent: RequestIntent | dict[str, Any]) -> ScheduledJob:
        """
        Persist a job that fires the intent at its schedule.

        Returns once the job is durably stored.

        Raises:
            MissingScheduleFieldError: schedule, tenantId or id is absent
            ScheduleNotInFutureError: schedule is not strictly after now
            InvalidIntentError: the intent is otherwise malformed
        """
        if isinstance(intent, dict):
            missing = [f for f in REQUIRED_PLAN_FIELDS if not intent.get(f)]
            if missing:
                raise MissingScheduleFieldError(
                    f"Cannot schedule request, missing: {', '.join(missing)}",
                    request_id=intent.get("id"),
                    tenant_id=intent.get("tenantId"),
                    details={"missing": missing},
                )
            intent = RequestIntent.from_message(intent)
        elif intent.schedule is None:
            raise MissingScheduleFieldError(
                "Cannot schedule request, missing: schedule",
                request_id=intent.id,
                tenant_id=intent.tenant_id,
                details={"missing": ["schedule"]},
            )

        now = self._clock()
        if intent.schedule <= now:
            raise ScheduleNotInFutureError(
                "Schedule must be in the future",
                request_id=intent.id,
                tenant_id=intent.tenant_id,
                details={"schedule": intent.schedule.isoformat(), "now": now.isoformat()},
            )

        job = ScheduledJob.for_intent(intent)
        await self._jobs.create(job)

        logger.info(
            "Request scheduled",
            stage=Stage.SCHEDULER_ACCEPT,
            request_id=intent.id,
            tenant_id=intent.tenant_id,
            job_id=job.job_id,
            due_at=job.due_at.isoformat(),
        )
        return job

    async def handle_plan_message(self, payload: dict[str, Any]) -> None:
        """
        Bus handler for plan messages.

        Policy and validation failures are logged and the message dropped.
        Job store failures propagate so the message is redelivered.
        """
        try:
            await self.schedule_request(payload)
        except (SchedulingPolicyError, ValidationError) as e:
            logger.error(
                "Plan message rejected",
                stage=Stage.SCHEDULER_REJECT,
                error=e.message,
                error_type=type(e).__name__,
                details=e.details,
            )

    async def cancel_scheduled_request(self, request_id: str, tenant_id: str) -> int:
        """Remove unfired jobs for the request. Returns the number removed."""
        return await self._jobs.cancel(request_id, tenant_id)

    # =========================================================================
    # Firing
    # =========================================================================

    async def _fire(self, job: ScheduledJob, stage: Stage = Stage.SCHEDULER_FIRE) -> bool:
        """
        Claim, publish and remove one job.

        Returns:
            True if this call fired the job
        """
        if not await self._jobs.claim(job.job_id, self._clock()):
            logger.debug("Job already claimed", stage=stage, job_id=job.job_id)
            return False

        bind_request_context(job.request_id, job.tenant_id)
        try:
            try:
                await self._bus.publish(
                    job.tenant_id,
                    self.settings.bus.PERFORM_REQUEST_EXCHANGE,
                    job.intent.without_schedule().to_message(),
                    self.settings.bus.PERFORM_REQUEST_ROUTING_KEY,
                )
            except Exception as e:
                # Kept as failed: no automatic retry, operators list and remediate
                logger.error(
                    "Failed to publish scheduled request",
                    stage=Stage.SCHEDULER_FIRE_FAILED,
                    job_id=job.job_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._jobs.mark_failed(job.job_id, str(e) or type(e).__name__, self._clock())
                return False

            await self._jobs.remove(job.job_id)
            logger.info(
                "Scheduled request fired",
                stage=stage,
                job_id=job.job_id,
                due_at=job.due_at.isoformat(),
            )
            return True
        finally:
            clear_request_context()

    async def tick(self) -> int:
        """
        Fire up to SCHEDULER_BATCH_SIZE due jobs.

        Returns:
            Number of jobs fired by this tick
        """
        jobs = await self._jobs.due(self._clock(), self.settings.scheduler.SCHEDULER_BATCH_SIZE)
        fired = 0
        for job in jobs:
            if await self._fire(job):
                fired += 1
        if jobs:
            logger.info("Tick finished", stage=Stage.SCHEDULER_TICK, due=len(jobs), fired=fired)
        return fired

    async def recover_missed_jobs(self) -> int:
        """
        Fire every job that came due while no scheduler was running.

        Concurrency is bounded by SCHEDULER_RECOVERY_CONCURRENCY.

        Returns:
            Number of jobs fired
        """
        missed = await self._jobs.due(self._clock(), None)
        if not missed:
            return 0

        semaphore = asyncio.Semaphore(self.settings.scheduler.SCHEDULER_RECOVERY_CONCURRENCY)

        async def _bounded(job: ScheduledJob) -> bool:
            async with semaphore:
                return await self._fire(job, Stage.SCHEDULER_RECOVERY)

        results = await asyncio.gather(*(_bounded(job) for job in missed), return_exceptions=True)
        fired = sum(1 for r in results if r is True)
        errors = [r for r in results if isinstance(r, Exception)]
        for error in errors:
            logger.error("Missed job recovery error", stage=Stage.SCHEDULER_RECOVERY, error=str(error))

        logger.info(
            "Missed job recovery finished",
            stage=Stage.SCHEDULER_RECOVERY,
            missed=len(missed),
            fired=fired,
            errors=len(errors),
        )
        return fired

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Run missed-job recovery, then start the tick loop."""
        self._stopping.clear()
        await self.recover_missed_jobs()
        self._tick_task = asyncio.create_task(self._tick_loop(), name="scheduler-tick")

    async def subscribe(self, tenants: list[str]) -> None:
        for tenant_id in tenants:
            await self._bus.subscribe(tenant_id, self.plan_binding, self.handle_plan_message)

    async def _tick_loop(self) -> None:
        interval = self.settings.scheduler.SCHEDULER_TICK_SECONDS
        while not self._stopping.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error("Tick failed", stage=Stage.SCHEDULER_TICK, error=str(e), exc_info=True)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the tick loop after the current tick."""
        self._stopping.set()
        if self._tick_task is not None:
            await self._tick_task
            self._tick_task = None
