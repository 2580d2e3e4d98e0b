"""
Domain Models

- **intent.py**: RequestIntent (what to call)
- **outcome.py**: CompletionOutcome, ResponseSnapshot, ErrorSnapshot (what happened)
- **job.py**: ScheduledJob (durable timer)
- **record.py**: RequestRecord (persisted lifecycle state)
"""

from request_relay.models.intent import RequestIntent
from request_relay.models.job import ScheduledJob
from request_relay.models.outcome import CompletionOutcome, ErrorSnapshot, ResponseSnapshot
from request_relay.models.record import RequestRecord

__all__ = [
    "RequestIntent",
    "CompletionOutcome",
    "ResponseSnapshot",
    "ErrorSnapshot",
    "ScheduledJob",
    "RequestRecord",
]
