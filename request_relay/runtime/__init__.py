"""
Runtime Module

- **bootstrap.py**: component wiring per process
- **service_runner.py**: signal-aware run loop with graceful drain
"""

from request_relay.runtime.bootstrap import SERVICES, Components, ServiceHandle
from request_relay.runtime.service_runner import EXIT_FATAL, EXIT_OK, ServiceRunner, run_service

__all__ = [
    "Components",
    "ServiceHandle",
    "SERVICES",
    "ServiceRunner",
    "run_service",
    "EXIT_OK",
    "EXIT_FATAL",
]
