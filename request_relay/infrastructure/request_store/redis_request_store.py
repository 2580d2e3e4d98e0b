"""
Redis Request Store

Persisted request records, one hash per record scoped by tenant:

    {prefix}:request:{tenant}:{id}   hash (JSON-encoded values)
    {prefix}:requests:{tenant}       sorted set of ids, score = createdAt epoch seconds

The pipeline only changes ``status``, ``response`` and ``updatedAt``; the
intent fields are written once by intake.
"""

from datetime import datetime
from typing import Any

import orjson
from redis.exceptions import RedisError

from request_relay.core.exceptions import RelayError
from request_relay.core.logging import get_logger
from request_relay.infrastructure.redis.client import RedisConnection
from request_relay.models.record import RequestRecord

logger = get_logger(__name__)


class RequestStoreError(RelayError):
    """Raised when the request store cannot be read or written."""
    pass


class RedisRequestStore:
    """Redis implementation of the RequestStore protocol."""

    def __init__(self, connection: RedisConnection):
        self._connection = connection

    @property
    def client(self):
        if self._connection.client is None:
            raise RequestStoreError("Request store is not connected")
        return self._connection.client

    def _record_key(self, tenant_id: str, request_id: str) -> str:
        return self._connection.key("request", tenant_id, request_id)

    def _index_key(self, tenant_id: str) -> str:
        return self._connection.key("requests", tenant_id)

    @staticmethod
    def _encode(document: dict[str, Any]) -> dict[str, str]:
        return {k: orjson.dumps(v).decode("utf-8") for k, v in document.items()}

    @staticmethod
    def _decode(data: dict[str, str]) -> RequestRecord:
        return RequestRecord.model_validate({k: orjson.loads(v) for k, v in data.items()})

    async def create(self, record: RequestRecord) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(
                    self._record_key(record.tenant_id, record.id),
                    mapping=self._encode(record.to_document()),
                )
                pipe.zadd(self._index_key(record.tenant_id), {record.id: record.created_at.timestamp()})
                await pipe.execute()
        except RedisError as e:
            raise RequestStoreError.from_exception(e, request_id=record.id, tenant_id=record.tenant_id) from e

    async def find_by_id_and_tenant(self, request_id: str, tenant_id: str) -> RequestRecord | None:
        try:
            data = await self.client.hgetall(self._record_key(tenant_id, request_id))
        except RedisError as e:
            raise RequestStoreError.from_exception(e, request_id=request_id, tenant_id=tenant_id) from e
        return self._decode(data) if data else None

    async def update_status_and_response(
        self,
        request_id: str,
        tenant_id: str,
        status: str,
        response: dict[str, Any],
        updated_at: datetime,
    ) -> bool:
        key = self._record_key(tenant_id, request_id)
        try:
            if not await self.client.exists(key):
                return False
            await self.client.hset(
                key,
                mapping=self._encode(
                    {"status": str(getattr(status, "value", status)), "response": response, "updatedAt": updated_at.isoformat()}
                ),
            )
        except RedisError as e:
            raise RequestStoreError.from_exception(e, request_id=request_id, tenant_id=tenant_id) from e
        return True

    async def list_by_tenant(
        self, tenant_id: str, status: str | None = None, limit: int = 50
    ) -> list[RequestRecord]:
        """Newest first, optionally filtered by status."""
        try:
            ids = await self.client.zrevrange(self._index_key(tenant_id), 0, -1)
            records = []
            for request_id in ids:
                record = await self.find_by_id_and_tenant(request_id, tenant_id)
                if record is None:
                    continue
                if status is not None and record.status != status:
                    continue
                records.append(record)
                if len(records) >= limit:
                    break
        except RedisError as e:
            raise RequestStoreError.from_exception(e, tenant_id=tenant_id) from e
        return records
