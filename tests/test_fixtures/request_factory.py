"""
Request Factory for Test Data

Creates consistent intent and outcome payloads (wire shape, camelCase).
"""

from datetime import datetime, timedelta, timezone
from typing import Any

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RequestFactory:
    """Factory for creating intent / outcome payloads."""

    @staticmethod
    def intent(
        request_id: str = "r1",
        tenant_id: str = "acme",
        schedule: datetime | str | None = None,
        **overrides: Any,
    ) -> dict[str, Any]:
        payload = {
            "id": request_id,
            "tenantId": tenant_id,
            "name": "ping",
            "method": "POST",
            "url": "https://api.example.com/hooks",
            "headers": {"Content-Type": "application/json"},
            "body": {"hello": "world"},
        }
        if schedule is not None:
            payload["schedule"] = schedule.isoformat() if isinstance(schedule, datetime) else schedule
        payload.update(overrides)
        return payload

    @staticmethod
    def completed(
        request_id: str = "r1", tenant_id: str = "acme", http_status: int = 200, **overrides: Any
    ) -> dict[str, Any]:
        payload = {
            "id": request_id,
            "tenantId": tenant_id,
            "status": "completed",
            "response": {"status": http_status, "statusText": "", "headers": {}, "data": None},
            "executionTime": 12.5,
            "completedAt": "2024-01-01T00:00:00Z",
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def failed(request_id: str = "r1", tenant_id: str = "acme", **overrides: Any) -> dict[str, Any]:
        payload = {
            "id": request_id,
            "tenantId": tenant_id,
            "status": "failed",
            "error": {"message": "connect timeout", "code": "ConnectTimeout", "response": None},
            "completedAt": "2024-01-01T00:00:00Z",
        }
        payload.update(overrides)
        return payload
