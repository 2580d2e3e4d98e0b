"""
Exception Module

Structured exception hierarchy for the request relay, grouped by theme:

- **base.py**: RelayError base class + ConfigurationError
- **validation.py**: malformed intents / outcomes (logged and dropped)
- **topology.py**: tenant resource provisioning failures (propagated, retried)
- **transport.py**: broker publish / subscribe failures (propagated)
- **scheduling.py**: synchronous scheduling policy violations, job store errors
- **execution.py**: downstream HTTP transport failures (become failed outcomes)

Usage:
------
```python
from request_relay.core.exceptions import TopologyError, ValidationError
```
"""

from request_relay.core.exceptions.base import ConfigurationError, RelayError
from request_relay.core.exceptions.execution import ExecutionError
from request_relay.core.exceptions.scheduling import (
    JobStoreError,
    MissingScheduleFieldError,
    ScheduleNotInFutureError,
    SchedulingPolicyError,
)
from request_relay.core.exceptions.topology import TopologyError
from request_relay.core.exceptions.transport import (
    BrokerConnectionError,
    NotConnectedError,
    PublishError,
    TransportError,
)
from request_relay.core.exceptions.validation import (
    InvalidIntentError,
    InvalidOutcomeError,
    ValidationError,
)

__all__ = [
    # Base
    "RelayError",
    "ConfigurationError",
    # Validation
    "ValidationError",
    "InvalidIntentError",
    "InvalidOutcomeError",
    # Topology
    "TopologyError",
    # Transport
    "TransportError",
    "NotConnectedError",
    "PublishError",
    "BrokerConnectionError",
    # Scheduling
    "SchedulingPolicyError",
    "MissingScheduleFieldError",
    "ScheduleNotInFutureError",
    "JobStoreError",
    # Execution
    "ExecutionError",
]
