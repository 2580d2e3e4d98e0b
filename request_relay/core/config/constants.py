"""
System Constants and Enumerations

Lifecycle states, outcome states, wire field names and log stage identifiers
shared by every relay component.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for status strings that travel over the wire
- Type-safe enums for state management
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of every log entry.

    Format: {COMPONENT}.{STEP}
    """

    def __str__(self) -> str:
        return self.value

    # Topology
    TOPOLOGY_ENSURE = "TOPO.ENSURE"
    TOPOLOGY_ERROR = "TOPO.ERR"

    # Bus
    BUS_CONNECT = "BUS.CONNECT"
    BUS_PUBLISH = "BUS.PUBLISH"
    BUS_SUBSCRIBE = "BUS.SUBSCRIBE"
    BUS_DELIVER = "BUS.DELIVER"
    BUS_POISON = "BUS.POISON"
    BUS_HANDLER_ERROR = "BUS.HANDLER_ERR"
    BUS_LOOP_ERROR = "BUS.LOOP_ERR"
    BUS_CLOSE = "BUS.CLOSE"

    # Scheduler
    SCHEDULER_ACCEPT = "SCHED.ACCEPT"
    SCHEDULER_REJECT = "SCHED.REJECT"
    SCHEDULER_TICK = "SCHED.TICK"
    SCHEDULER_FIRE = "SCHED.FIRE"
    SCHEDULER_FIRE_FAILED = "SCHED.FIRE_ERR"
    SCHEDULER_RECOVERY = "SCHED.RECOVERY"
    SCHEDULER_CANCEL = "SCHED.CANCEL"

    # Executor
    EXECUTOR_START = "EXEC.START"
    EXECUTOR_RESPONSE = "EXEC.RESPONSE"
    EXECUTOR_TRANSPORT_FAILURE = "EXEC.TRANSPORT_ERR"
    EXECUTOR_INVALID = "EXEC.INVALID"

    # Reconciler
    RECONCILER_APPLY = "RECON.APPLY"
    RECONCILER_DROP = "RECON.DROP"

    # Intake
    INTAKE_SUBMIT = "INTAKE.SUBMIT"

    # Runtime
    RUNTIME_START = "RUN.START"
    RUNTIME_STOP = "RUN.STOP"
    RUNTIME_FATAL = "RUN.FATAL"


# ============================================================================
# Lifecycle States
# ============================================================================


class RequestStatus(str, Enum):
    """
    Lifecycle status of a persisted request record.

    PENDING: accepted for immediate execution
    SCHEDULED: waiting for its due time in the scheduler
    SUCCESS: executed, downstream answered 2xx
    FAILED: transport failure or non-2xx answer
    COMPLETED: executed but the outcome could not be classified
    """

    PENDING = "pending"
    SCHEDULED = "scheduled"
    SUCCESS = "success"
    FAILED = "failed"
    COMPLETED = "completed"


class OutcomeStatus(str, Enum):
    """Transport-level outcome reported by the executor."""

    COMPLETED = "completed"
    FAILED = "failed"


class JobState(str, Enum):
    """Observable state of a ScheduledJob record."""

    SCHEDULED = "scheduled"
    LOCKED = "locked"
    FAILED = "failed"


# ============================================================================
# HTTP
# ============================================================================

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})

# ============================================================================
# Wire
# ============================================================================

DELIVERY_MODE_PERSISTENT = 2
ENVELOPE_BODY_FIELD = "body"
MAX_ENVELOPE_DEPTH = 8
