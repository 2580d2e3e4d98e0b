"""
Redis Job Store

Durable ScheduledJob storage.

Keys:
    {prefix}:job:{job_id}                      hash, one per job
    {prefix}:jobs:due                          sorted set, score = due_at epoch seconds
    {prefix}:jobs:failed                       sorted set, score = failed_at epoch seconds
    {prefix}:jobs:request:{tenant}:{request}   set of job ids for a request

Claiming a job is a single Lua script: the lock is taken only if the job
still exists, is not failed, and holds no lock younger than the lock
lifetime. Tick and startup recovery both go through it, so a due job is
fired by at most one of them. Cancellation runs the same checks in its own
script before deleting, so a job is either cancelled or fired, never both.
"""

from datetime import datetime, timedelta, timezone

import orjson
from redis.exceptions import RedisError

from request_relay.core.config.constants import Stage
from request_relay.core.config.settings import Settings, get_settings
from request_relay.core.exceptions import JobStoreError
from request_relay.core.interfaces.job_store import JobStore
from request_relay.core.logging import get_logger
from request_relay.infrastructure.redis.client import RedisConnection
from request_relay.models.intent import RequestIntent
from request_relay.models.job import ScheduledJob

logger = get_logger(__name__)

# KEYS[1] job hash
# ARGV[1] now (epoch seconds), ARGV[2] stale threshold (epoch seconds), ARGV[3] now (ISO)
CLAIM_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return 0
end
local failed = redis.call('HGET', KEYS[1], 'failed_at')
if failed and failed ~= '' then
    return 0
end
local locked = redis.call('HGET', KEYS[1], 'locked_ts')
if locked and locked ~= '' and tonumber(locked) > tonumber(ARGV[2]) then
    return 0
end
redis.call('HSET', KEYS[1], 'locked_at', ARGV[3], 'locked_ts', ARGV[1], 'last_run_at', ARGV[3])
return 1
"""

# KEYS[1] job hash, KEYS[2] due zset, KEYS[3] request set
# ARGV[1] job id, ARGV[2] stale threshold (epoch seconds)
CANCEL_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    redis.call('SREM', KEYS[3], ARGV[1])
    return 0
end
local failed = redis.call('HGET', KEYS[1], 'failed_at')
if failed and failed ~= '' then
    return 0
end
local locked = redis.call('HGET', KEYS[1], 'locked_ts')
if locked and locked ~= '' and tonumber(locked) > tonumber(ARGV[2]) then
    return 0
end
redis.call('DEL', KEYS[1])
redis.call('ZREM', KEYS[2], ARGV[1])
redis.call('SREM', KEYS[3], ARGV[1])
return 1
"""


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value is not None else ""


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class RedisJobStore(JobStore):
    """
    JobStore on Redis hashes and sorted sets.

    Usage:
        store = RedisJobStore(connection)
        await store.create(ScheduledJob.for_intent(intent))
        for job in await store.due(now, limit=20):
            if await store.claim(job.job_id, now):
                ...
    """

    def __init__(self, connection: RedisConnection, settings: Settings | None = None):
        self._connection = connection
        self.settings = settings or get_settings()
        self._lock_lifetime = timedelta(seconds=self.settings.scheduler.SCHEDULER_LOCK_LIFETIME_SECONDS)
        self._claim_script = None
        self._cancel_script = None

    @property
    def client(self):
        if self._connection.client is None:
            raise JobStoreError("Job store is not connected")
        return self._connection.client

    def _job_key(self, job_id: str) -> str:
        return self._connection.key("job", job_id)

    def _due_key(self) -> str:
        return self._connection.key("jobs", "due")

    def _failed_key(self) -> str:
        return self._connection.key("jobs", "failed")

    def _request_key(self, tenant_id: str, request_id: str) -> str:
        return self._connection.key("jobs", "request", tenant_id, request_id)

    def _serialize(self, job: ScheduledJob) -> dict[str, str]:
        return {
            "job_id": job.job_id,
            "request_id": job.request_id,
            "tenant_id": job.tenant_id,
            "intent": orjson.dumps(job.intent.to_message()).decode("utf-8"),
            "due_at": _iso(job.due_at),
            "due_ts": repr(job.due_at.timestamp()),
            "locked_at": _iso(job.locked_at),
            "locked_ts": repr(job.locked_at.timestamp()) if job.locked_at else "",
            "last_run_at": _iso(job.last_run_at),
            "failed_at": _iso(job.failed_at),
            "fail_reason": job.fail_reason or "",
        }

    def _deserialize(self, data: dict[str, str]) -> ScheduledJob:
        return ScheduledJob(
            job_id=data["job_id"],
            request_id=data["request_id"],
            tenant_id=data["tenant_id"],
            intent=RequestIntent.model_validate(orjson.loads(data["intent"])),
            due_at=_parse_dt(data["due_at"]),
            locked_at=_parse_dt(data.get("locked_at")),
            last_run_at=_parse_dt(data.get("last_run_at")),
            failed_at=_parse_dt(data.get("failed_at")),
            fail_reason=data.get("fail_reason") or None,
        )

    def _lock_is_live(self, job: ScheduledJob, now: datetime) -> bool:
        return job.locked_at is not None and job.locked_at > now - self._lock_lifetime

    async def create(self, job: ScheduledJob) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job.job_id), mapping=self._serialize(job))
                pipe.zadd(self._due_key(), {job.job_id: job.due_at.timestamp()})
                pipe.sadd(self._request_key(job.tenant_id, job.request_id), job.job_id)
                await pipe.execute()
        except RedisError as e:
            raise JobStoreError.from_exception(
                e, request_id=job.request_id, tenant_id=job.tenant_id, job_id=job.job_id
            ) from e

    async def get(self, job_id: str) -> ScheduledJob | None:
        try:
            data = await self.client.hgetall(self._job_key(job_id))
        except RedisError as e:
            raise JobStoreError.from_exception(e, job_id=job_id) from e
        return self._deserialize(data) if data else None

    async def _load_many(self, job_ids: list[str]) -> list[ScheduledJob]:
        if not job_ids:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for job_id in job_ids:
                pipe.hgetall(self._job_key(job_id))
            rows = await pipe.execute()
        return [self._deserialize(row) for row in rows if row]

    async def due(self, now: datetime, limit: int | None = None) -> list[ScheduledJob]:
        """
        Due jobs that are not failed and not held by a live lock.

        Args:
            now: Reference instant
            limit: Maximum number of jobs returned (None: all)
        """
        try:
            if limit is None:
                job_ids = await self.client.zrangebyscore(self._due_key(), "-inf", now.timestamp())
                return self._eligible(await self._load_many(job_ids), now)

            # Locked jobs stay in the due index, so page past them
            eligible: list[ScheduledJob] = []
            offset = 0
            while len(eligible) < limit:
                job_ids = await self.client.zrangebyscore(
                    self._due_key(), "-inf", now.timestamp(), start=offset, num=limit
                )
                eligible.extend(self._eligible(await self._load_many(job_ids), now))
                if len(job_ids) < limit:
                    break
                offset += limit
        except RedisError as e:
            raise JobStoreError.from_exception(e, operation="due") from e
        return eligible[:limit]

    def _eligible(self, jobs: list[ScheduledJob], now: datetime) -> list[ScheduledJob]:
        return [j for j in jobs if j.failed_at is None and not self._lock_is_live(j, now)]

    async def claim(self, job_id: str, now: datetime) -> bool:
        if self._claim_script is None:
            self._claim_script = self.client.register_script(CLAIM_SCRIPT)
        stale_before = now - self._lock_lifetime
        try:
            claimed = await self._claim_script(
                keys=[self._job_key(job_id)],
                args=[repr(now.timestamp()), repr(stale_before.timestamp()), now.isoformat()],
            )
        except RedisError as e:
            raise JobStoreError.from_exception(e, job_id=job_id, operation="claim") from e
        return bool(claimed)

    async def remove(self, job_id: str) -> None:
        try:
            job = await self.get(job_id)
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(self._job_key(job_id))
                pipe.zrem(self._due_key(), job_id)
                pipe.zrem(self._failed_key(), job_id)
                if job is not None:
                    pipe.srem(self._request_key(job.tenant_id, job.request_id), job_id)
                await pipe.execute()
        except RedisError as e:
            raise JobStoreError.from_exception(e, job_id=job_id, operation="remove") from e

    async def mark_failed(self, job_id: str, reason: str, now: datetime) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._job_key(job_id),
                    mapping={
                        "failed_at": now.isoformat(),
                        "fail_reason": reason,
                        "locked_at": "",
                        "locked_ts": "",
                    },
                )
                pipe.zrem(self._due_key(), job_id)
                pipe.zadd(self._failed_key(), {job_id: now.timestamp()})
                await pipe.execute()
        except RedisError as e:
            raise JobStoreError.from_exception(e, job_id=job_id, operation="mark_failed") from e

    async def cancel(self, request_id: str, tenant_id: str) -> int:
        """
        Remove the request's jobs that have not fired yet.

        Failed jobs and jobs currently being fired are left alone.
        """
        if self._cancel_script is None:
            self._cancel_script = self.client.register_script(CANCEL_SCRIPT)
        stale_before = datetime.now(timezone.utc) - self._lock_lifetime
        request_key = self._request_key(tenant_id, request_id)

        removed = 0
        try:
            for job_id in sorted(await self.client.smembers(request_key)):
                removed += await self._cancel_script(
                    keys=[self._job_key(job_id), self._due_key(), request_key],
                    args=[job_id, repr(stale_before.timestamp())],
                )
        except RedisError as e:
            raise JobStoreError.from_exception(e, request_id=request_id, tenant_id=tenant_id) from e

        logger.info(
            "Scheduled jobs cancelled",
            stage=Stage.SCHEDULER_CANCEL,
            request_id=request_id,
            tenant_id=tenant_id,
            removed=removed,
        )
        return removed

    async def list_failed(self, limit: int = 100) -> list[ScheduledJob]:
        try:
            job_ids = await self.client.zrange(self._failed_key(), 0, limit - 1)
            return await self._load_many(job_ids)
        except RedisError as e:
            raise JobStoreError.from_exception(e, operation="list_failed") from e
