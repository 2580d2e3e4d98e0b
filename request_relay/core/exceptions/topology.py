"""
Topology Exceptions

Broker declare / bind failures while provisioning tenant resources.
"""

from request_relay.core.exceptions.base import RelayError


class TopologyError(RelayError):
    """
    Raised when an exchange, queue or binding cannot be declared.

    The tenant is not marked provisioned, so the next ensure() call retries
    the whole provisioning from scratch.
    """
    pass
