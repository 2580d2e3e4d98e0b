"""
Transport Exceptions

Broker-level publish / subscribe failures. Always propagated to the caller.
"""

from request_relay.core.exceptions.base import RelayError


class TransportError(RelayError):
    """Base exception for message bus transport errors."""
    pass


class NotConnectedError(TransportError):
    """Raised when publish or subscribe is called before connect()."""
    pass


class PublishError(TransportError):
    """Raised when the broker does not confirm a published message."""
    pass


class BrokerConnectionError(TransportError):
    """
    Raised when the broker connection cannot be established.

    At process startup this is fatal: the runner logs it and exits.
    """
    pass
