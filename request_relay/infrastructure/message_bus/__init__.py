"""
Message Bus Module

- **topology.py**: tenant resource naming and per-process provisioning
- **envelope.py**: wire codec with nested ``body`` unwrapping
- **redis_bus.py**: RedisStreamBus, the durable publish / subscribe client
"""

from request_relay.infrastructure.message_bus.envelope import (
    Malformed,
    RawObject,
    decode_envelope,
    encode_message,
)
from request_relay.infrastructure.message_bus.redis_bus import RedisStreamBus, default_bindings
from request_relay.infrastructure.message_bus.topology import (
    TenantResources,
    TenantTopology,
    normalize_tenant_id,
    scoped_name,
)

__all__ = [
    "RedisStreamBus",
    "default_bindings",
    "TenantTopology",
    "TenantResources",
    "normalize_tenant_id",
    "scoped_name",
    "RawObject",
    "Malformed",
    "decode_envelope",
    "encode_message",
]
