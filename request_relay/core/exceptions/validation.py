"""
Validation Exceptions

Malformed intents and outcomes. These are logged and the message is
dropped; they are never retried.
"""

from request_relay.core.exceptions.base import RelayError


class ValidationError(RelayError):
    """
    Raised when a message does not have the shape a component requires.

    This is the base class for all validation-related errors.
    """
    pass


class InvalidIntentError(ValidationError):
    """
    Raised when a request intent is missing id, tenantId, name, method or url,
    or carries values of the wrong type.
    """
    pass


class InvalidOutcomeError(ValidationError):
    """
    Raised when a completion outcome is missing id, tenantId, status or
    completedAt, or reports an unknown status.
    """
    pass
