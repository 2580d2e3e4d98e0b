"""
Job Store Interface

Durable storage for ScheduledJob records with an atomic claim operation.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from request_relay.models.job import ScheduledJob


class JobStore(ABC):
    """
    Abstract base class for scheduled job storage.

    claim() is the only permitted precondition for firing a job: it must be a
    single atomic conditional update, never a read followed by a write.
    """

    @abstractmethod
    async def create(self, job: ScheduledJob) -> None:
        """Persist a new job. Returns once the write is durable."""
        pass

    @abstractmethod
    async def due(self, now: datetime, limit: int) -> list[ScheduledJob]:
        """Jobs with due_at <= now that are neither failed nor holding a live lock."""
        pass

    @abstractmethod
    async def claim(self, job_id: str, now: datetime) -> bool:
        """Atomically lock a job. Returns False if another worker holds it."""
        pass

    @abstractmethod
    async def remove(self, job_id: str) -> None:
        """Delete a fired job."""
        pass

    @abstractmethod
    async def mark_failed(self, job_id: str, reason: str, now: datetime) -> None:
        """Keep the job, release its lock and exclude it from future scans."""
        pass

    @abstractmethod
    async def cancel(self, request_id: str, tenant_id: str) -> int:
        """Remove every unfired job for the request. Returns the count removed."""
        pass

    @abstractmethod
    async def list_failed(self, limit: int = 100) -> list[ScheduledJob]:
        """Jobs marked failed, oldest failure first."""
        pass

    @abstractmethod
    async def get(self, job_id: str) -> ScheduledJob | None:
        pass
