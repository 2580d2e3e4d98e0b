"""
Test Fixtures Package

In-memory doubles and data factories shared across the test suite.
"""

from .in_memory_bus import InMemoryMessageBus, InMemoryTopologyChannel
from .in_memory_stores import InMemoryJobStore, InMemoryRequestStore
from .request_factory import BASE_TIME, FakeClock, RequestFactory

__all__ = [
    "InMemoryMessageBus",
    "InMemoryTopologyChannel",
    "InMemoryJobStore",
    "InMemoryRequestStore",
    "RequestFactory",
    "FakeClock",
    "BASE_TIME",
]
