"""
Core Interfaces Module

Abstract seams between the services and their infrastructure, so every
service can be exercised with in-memory doubles.

Components:
-----------
- **message_bus.py**: MessageBus ABC, TopicBinding, MessageHandler
- **job_store.py**: JobStore ABC with atomic claim
- **request_store.py**: RequestStore protocol
"""

from request_relay.core.interfaces.job_store import JobStore
from request_relay.core.interfaces.message_bus import MessageBus, MessageHandler, TopicBinding
from request_relay.core.interfaces.request_store import RequestStore

__all__ = [
    "MessageBus",
    "MessageHandler",
    "TopicBinding",
    "JobStore",
    "RequestStore",
]
