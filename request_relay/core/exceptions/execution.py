"""
Execution Exceptions

Downstream HTTP failures at the transport level (no response obtained).
These never escape RequestExecutor.execute(); they are converted into a
``failed`` completion outcome.
"""

from typing import Any

from request_relay.core.exceptions.base import RelayError


class ExecutionError(RelayError):
    """
    Raised internally when the outbound HTTP call fails without a response.

    Attributes:
        code: Short machine readable failure code (e.g. "ConnectTimeout")
        response: Partial response snippet, when one was available
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        response: dict[str, Any] | None = None,
        request_id: str | None = None,
        tenant_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, request_id=request_id, tenant_id=tenant_id, details=details)
        self.code = code
        self.response = response

    def to_outcome_error(self) -> dict[str, Any]:
        """Shape used for the ``error`` field of a failed completion outcome."""
        return {"message": self.message, "code": self.code, "response": self.response}
