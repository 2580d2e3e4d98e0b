"""
Scheduling Exceptions

Policy violations detected synchronously by schedule_request(), plus
failures of the durable job store.
"""

from request_relay.core.exceptions.base import RelayError


class SchedulingPolicyError(RelayError):
    """
    Raised when a request cannot be scheduled.

    Caller error: nothing is persisted.
    """
    pass


class MissingScheduleFieldError(SchedulingPolicyError):
    """Raised when schedule, tenantId or id is absent."""
    pass


class ScheduleNotInFutureError(SchedulingPolicyError):
    """Raised when the schedule instant is not strictly after now."""
    pass


class JobStoreError(RelayError):
    """Raised when the job store cannot read or write a job record."""
    pass
