"""
Persisted Request Record

What the request store holds per request: the intent snapshot, the current
lifecycle status and the last completion outcome.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from request_relay.core.config.constants import RequestStatus
from request_relay.models.intent import RequestIntent


class RequestRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    tenant_id: str = Field(..., alias="tenantId")
    name: str
    method: str
    url: str
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    schedule: datetime | None = None
    status: RequestStatus
    response: dict[str, Any] | None = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_intent(cls, intent: RequestIntent, status: RequestStatus, now: datetime) -> "RequestRecord":
        return cls(
            id=intent.id,
            tenant_id=intent.tenant_id,
            name=intent.name,
            method=intent.method,
            url=intent.url,
            headers=intent.headers,
            body=intent.body,
            schedule=intent.schedule,
            status=status,
            created_at=now,
            updated_at=now,
        )

    def to_intent(self) -> RequestIntent:
        return RequestIntent(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            method=self.method,
            url=self.url,
            headers=self.headers,
            body=self.body,
            schedule=self.schedule,
        )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
