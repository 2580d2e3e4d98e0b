"""
Unit Tests for the Redis Job Store
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import RedisError

from request_relay.core.config.constants import JobState
from request_relay.core.exceptions import JobStoreError
from request_relay.infrastructure.job_store import RedisJobStore
from request_relay.infrastructure.redis.client import RedisConnection
from request_relay.models.intent import RequestIntent
from request_relay.models.job import ScheduledJob
from tests.test_fixtures import BASE_TIME, RequestFactory


def make_job(request_id="r1", minutes=5, **fields) -> ScheduledJob:
    intent = RequestIntent.from_message(
        RequestFactory.intent(request_id, schedule=BASE_TIME + timedelta(minutes=minutes))
    )
    return ScheduledJob.for_intent(intent).model_copy(update=fields)


def make_pipeline(rows=None):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=rows or [])
    context = MagicMock()
    context.__aenter__.return_value = pipe
    context.__aexit__.return_value = False
    return pipe, context


@pytest.fixture
def mock_client():
    client = AsyncMock()
    client.pipeline = MagicMock()
    client.register_script = MagicMock()
    return client


@pytest.fixture
def store(settings, mock_client):
    connection = RedisConnection(settings)
    connection.client = mock_client
    connection._is_connected = True
    return RedisJobStore(connection, settings)


@pytest.mark.unit
class TestSerialization:
    def test_round_trip_preserves_job(self, store):
        job = make_job(locked_at=BASE_TIME, last_run_at=BASE_TIME)

        restored = store._deserialize(store._serialize(job))

        assert restored == job
        assert restored.state == JobState.LOCKED

    def test_unset_fields_stored_as_empty_strings(self, store):
        data = store._serialize(make_job())

        assert data["locked_at"] == ""
        assert data["failed_at"] == ""
        assert all(isinstance(v, str) for v in data.values())


@pytest.mark.unit
class TestRedisJobStore:
    @pytest.mark.asyncio
    async def test_create_writes_hash_and_indexes(self, store, mock_client):
        pipe, context = make_pipeline()
        mock_client.pipeline.return_value = context
        job = make_job()

        await store.create(job)

        pipe.hset.assert_called_once()
        assert pipe.hset.call_args.args[0] == f"relay:job:{job.job_id}"
        pipe.zadd.assert_called_once_with("relay:jobs:due", {job.job_id: job.due_at.timestamp()})
        pipe.sadd.assert_called_once_with("relay:jobs:request:acme:r1", job.job_id)
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_failure_wrapped(self, store, mock_client):
        pipe, context = make_pipeline()
        pipe.execute.side_effect = RedisError("READONLY")
        mock_client.pipeline.return_value = context

        with pytest.raises(JobStoreError) as exc_info:
            await store.create(make_job())

        assert exc_info.value.request_id == "r1"

    @pytest.mark.asyncio
    async def test_due_skips_live_locks_and_failed(self, store, mock_client):
        now = BASE_TIME + timedelta(minutes=10)
        ready = make_job("ready")
        live = make_job("live", locked_at=now - timedelta(seconds=30))
        stale = make_job("stale", locked_at=now - timedelta(hours=1))
        failed = make_job("failed", failed_at=now)
        jobs = [ready, live, stale, failed]
        mock_client.zrangebyscore.return_value = [j.job_id for j in jobs]
        _pipe, context = make_pipeline([store._serialize(j) for j in jobs])
        mock_client.pipeline.return_value = context

        due = await store.due(now, limit=20)

        assert [j.request_id for j in due] == ["ready", "stale"]
        mock_client.zrangebyscore.assert_awaited_once_with(
            "relay:jobs:due", "-inf", now.timestamp(), start=0, num=20
        )

    @pytest.mark.asyncio
    async def test_due_pages_until_limit_filled(self, store, mock_client):
        now = BASE_TIME + timedelta(minutes=10)
        locked = [make_job(f"locked{i}", locked_at=now) for i in range(2)]
        free = make_job("free")
        mock_client.zrangebyscore.side_effect = [[j.job_id for j in locked], [free.job_id]]
        _p1, first = make_pipeline([store._serialize(j) for j in locked])
        _p2, second = make_pipeline([store._serialize(free)])
        mock_client.pipeline.side_effect = [first, second]

        due = await store.due(now, limit=2)

        assert [j.request_id for j in due] == ["free"]
        offsets = [c.kwargs["start"] for c in mock_client.zrangebyscore.await_args_list]
        assert offsets == [0, 2]

    @pytest.mark.asyncio
    async def test_due_without_limit_reads_everything(self, store, mock_client):
        mock_client.zrangebyscore.return_value = []

        assert await store.due(BASE_TIME) == []

        mock_client.zrangebyscore.assert_awaited_once_with("relay:jobs:due", "-inf", BASE_TIME.timestamp())

    @pytest.mark.asyncio
    async def test_claim_runs_script_with_stale_threshold(self, store, mock_client, settings):
        script = AsyncMock(return_value=1)
        mock_client.register_script.return_value = script

        assert await store.claim("job-1", BASE_TIME) is True

        lifetime = settings.scheduler.SCHEDULER_LOCK_LIFETIME_SECONDS
        script.assert_awaited_once_with(
            keys=["relay:job:job-1"],
            args=[
                repr(BASE_TIME.timestamp()),
                repr((BASE_TIME - timedelta(seconds=lifetime)).timestamp()),
                BASE_TIME.isoformat(),
            ],
        )

    @pytest.mark.asyncio
    async def test_claim_lost(self, store, mock_client):
        mock_client.register_script.return_value = AsyncMock(return_value=0)

        assert await store.claim("job-1", BASE_TIME) is False

    @pytest.mark.asyncio
    async def test_script_registered_once(self, store, mock_client):
        mock_client.register_script.return_value = AsyncMock(return_value=1)

        await store.claim("job-1", BASE_TIME)
        await store.claim("job-2", BASE_TIME)

        mock_client.register_script.assert_called_once()

    @pytest.mark.asyncio
    async def test_claim_failure_wrapped(self, store, mock_client):
        mock_client.register_script.return_value = AsyncMock(side_effect=RedisError("NOSCRIPT"))

        with pytest.raises(JobStoreError):
            await store.claim("job-1", BASE_TIME)

    @pytest.mark.asyncio
    async def test_mark_failed_moves_job_to_failed_index(self, store, mock_client):
        pipe, context = make_pipeline()
        mock_client.pipeline.return_value = context

        await store.mark_failed("job-1", "PublishError", BASE_TIME)

        mapping = pipe.hset.call_args.kwargs["mapping"]
        assert mapping["failed_at"] == BASE_TIME.isoformat()
        assert mapping["fail_reason"] == "PublishError"
        assert mapping["locked_ts"] == ""
        pipe.zrem.assert_called_once_with("relay:jobs:due", "job-1")
        pipe.zadd.assert_called_once_with("relay:jobs:failed", {"job-1": BASE_TIME.timestamp()})

    @pytest.mark.asyncio
    async def test_remove_clears_every_index(self, store, mock_client):
        job = make_job()
        mock_client.hgetall.return_value = store._serialize(job)
        pipe, context = make_pipeline()
        mock_client.pipeline.return_value = context

        await store.remove(job.job_id)

        pipe.delete.assert_called_once_with(f"relay:job:{job.job_id}")
        pipe.srem.assert_called_once_with("relay:jobs:request:acme:r1", job.job_id)
        assert pipe.zrem.call_count == 2

    @pytest.mark.asyncio
    async def test_cancel_runs_script_per_job(self, store, mock_client):
        mock_client.smembers.return_value = {"job-b", "job-a"}
        script = AsyncMock(side_effect=[1, 0])
        mock_client.register_script.return_value = script

        assert await store.cancel("r1", "acme") == 1

        calls = script.await_args_list
        assert [c.kwargs["keys"] for c in calls] == [
            ["relay:job:job-a", "relay:jobs:due", "relay:jobs:request:acme:r1"],
            ["relay:job:job-b", "relay:jobs:due", "relay:jobs:request:acme:r1"],
        ]
        assert [c.kwargs["args"][0] for c in calls] == ["job-a", "job-b"]

    @pytest.mark.asyncio
    async def test_cancel_failure_wrapped(self, store, mock_client):
        mock_client.smembers.side_effect = RedisError("LOADING")

        with pytest.raises(JobStoreError) as exc_info:
            await store.cancel("r1", "acme")

        assert exc_info.value.tenant_id == "acme"

    @pytest.mark.asyncio
    async def test_get_missing_job(self, store, mock_client):
        mock_client.hgetall.return_value = {}

        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_list_failed(self, store, mock_client):
        job = make_job(failed_at=BASE_TIME, fail_reason="boom")
        mock_client.zrange.return_value = [job.job_id]
        _pipe, context = make_pipeline([store._serialize(job)])
        mock_client.pipeline.return_value = context

        failed = await store.list_failed(limit=10)

        assert failed == [job]
        assert failed[0].state == JobState.FAILED
        mock_client.zrange.assert_awaited_once_with("relay:jobs:failed", 0, 9)

    @pytest.mark.asyncio
    async def test_not_connected(self, settings):
        store = RedisJobStore(RedisConnection(settings), settings)

        with pytest.raises(JobStoreError):
            await store.get("job-1")
