"""
Request Intent Model

The description of one HTTP call a tenant wants performed, now or later.
Owned by intake, passed by value across the bus, never mutated once
published.

Wire shape (camelCase, as published on the bus):
    {"id": "...", "tenantId": "...", "name": "...", "method": "POST",
     "url": "https://...", "headers": {...}, "body": ..., "schedule": "ISO-8601"}
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from request_relay.core.config.constants import HTTP_METHODS
from request_relay.core.exceptions import InvalidIntentError


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RequestIntent(BaseModel):
    """
    An HTTP request to execute on behalf of a tenant.

    If ``schedule`` is absent or not strictly in the future the intent is
    immediate.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Globally unique id assigned by intake")
    tenant_id: str = Field(..., min_length=1, alias="tenantId")
    name: str = Field(..., min_length=1)
    method: str = Field(..., min_length=1, description="HTTP verb")
    url: str = Field(..., min_length=1)
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    schedule: datetime | None = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        method = v.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"unsupported HTTP method: {v}")
        return method

    @field_validator("headers", mode="before")
    @classmethod
    def default_headers(cls, v):
        return {} if v is None else v

    @field_validator("schedule")
    @classmethod
    def normalize_schedule(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @classmethod
    def from_message(cls, payload: dict[str, Any]) -> "RequestIntent":
        """
        Validate a decoded bus payload.

        Raises:
            InvalidIntentError: If required fields are missing or malformed
        """
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise InvalidIntentError(
                "Invalid request intent",
                request_id=payload.get("id") if isinstance(payload, dict) else None,
                tenant_id=payload.get("tenantId") if isinstance(payload, dict) else None,
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def is_immediate(self, now: datetime) -> bool:
        return self.schedule is None or self.schedule <= now

    def without_schedule(self) -> "RequestIntent":
        return self.model_copy(update={"schedule": None})

    def to_message(self) -> dict[str, Any]:
        """Serialize for the bus; ``schedule`` is omitted when unset."""
        exclude = {"schedule"} if self.schedule is None else None
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)
