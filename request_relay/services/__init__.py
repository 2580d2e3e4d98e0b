"""
Pipeline Services

- **intake.py**: RequestIntake, persists and routes new requests
- **scheduler.py**: DelayedExecutionScheduler, durable delayed execution with recovery
- **executor.py**: RequestExecutor, HTTP execution and outcome publishing
- **reconciler.py**: CompletionReconciler, terminal status transitions
"""

from request_relay.services.executor import RequestExecutor
from request_relay.services.intake import RequestIntake
from request_relay.services.reconciler import CompletionReconciler, derive_status
from request_relay.services.scheduler import DelayedExecutionScheduler

__all__ = [
    "RequestIntake",
    "DelayedExecutionScheduler",
    "RequestExecutor",
    "CompletionReconciler",
    "derive_status",
]
