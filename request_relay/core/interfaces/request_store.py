"""
Request Store Protocol

Interface of the store holding persisted request records. The pipeline only
reads records and updates their status; intake creates them.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from request_relay.models.record import RequestRecord


@runtime_checkable
class RequestStore(Protocol):
    """
    Protocol for request record storage.

    Implementations:
    - RedisRequestStore: production store
    - InMemoryRequestStore: tests
    """

    async def create(self, record: RequestRecord) -> None:
        ...

    async def find_by_id_and_tenant(self, request_id: str, tenant_id: str) -> RequestRecord | None:
        """
        Look up a record scoped to its tenant.

        Returns:
            The record, or None if it does not exist for that tenant
        """
        ...

    async def update_status_and_response(
        self,
        request_id: str,
        tenant_id: str,
        status: str,
        response: dict[str, Any],
        updated_at: datetime,
    ) -> bool:
        """
        Apply a lifecycle transition.

        Returns:
            True if a record was updated
        """
        ...

    async def list_by_tenant(
        self, tenant_id: str, status: str | None = None, limit: int = 50
    ) -> list[RequestRecord]:
        ...
