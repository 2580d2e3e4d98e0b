"""
Scheduled Job Model

Durable timer record created by the scheduler for each future-dated intent.
``due_at`` is fixed at creation; the job is removed after it fires once, or
kept and marked failed when publishing its intent failed.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from request_relay.core.config.constants import JobState
from request_relay.models.intent import RequestIntent


class ScheduledJob(BaseModel):
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_id: str
    tenant_id: str
    intent: RequestIntent
    due_at: datetime
    locked_at: datetime | None = None
    last_run_at: datetime | None = None
    failed_at: datetime | None = None
    fail_reason: str | None = None

    @classmethod
    def for_intent(cls, intent: RequestIntent) -> "ScheduledJob":
        """Build a job from an intent that carries a schedule."""
        if intent.schedule is None:
            raise ValueError("intent has no schedule")
        return cls(
            request_id=intent.id,
            tenant_id=intent.tenant_id,
            intent=intent,
            due_at=intent.schedule,
        )

    @property
    def state(self) -> JobState:
        if self.failed_at is not None:
            return JobState.FAILED
        if self.locked_at is not None:
            return JobState.LOCKED
        return JobState.SCHEDULED
