"""
Completion Outcome Model

The terminal transport-level result of one executor attempt. Exactly one is
published per execute() call.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from request_relay.core.config.constants import OutcomeStatus
from request_relay.core.exceptions import InvalidOutcomeError
from request_relay.models.intent import ensure_utc


class ResponseSnapshot(BaseModel):
    """The HTTP response as received from downstream."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    status: int | None = None
    status_text: str | None = Field(default=None, alias="statusText")
    headers: dict[str, Any] = Field(default_factory=dict)
    data: Any = None

    @property
    def is_success(self) -> bool:
        return self.status is not None and 200 <= self.status < 300


class ErrorSnapshot(BaseModel):
    """Transport failure details; ``response`` holds a partial response if one arrived."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    message: str
    code: str | None = None
    response: dict[str, Any] | None = None


class CompletionOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1, alias="tenantId")
    status: OutcomeStatus
    response: ResponseSnapshot | None = None
    error: ErrorSnapshot | None = None
    execution_time: float | None = Field(default=None, alias="executionTime", description="Milliseconds")
    completed_at: datetime = Field(..., alias="completedAt")

    @field_validator("completed_at")
    @classmethod
    def normalize_completed_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def from_message(cls, payload: dict[str, Any]) -> "CompletionOutcome":
        """
        Validate a decoded bus payload.

        Raises:
            InvalidOutcomeError: If id, tenantId, status or completedAt is missing or malformed
        """
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise InvalidOutcomeError(
                "Invalid completion outcome",
                request_id=payload.get("id") if isinstance(payload, dict) else None,
                tenant_id=payload.get("tenantId") if isinstance(payload, dict) else None,
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
