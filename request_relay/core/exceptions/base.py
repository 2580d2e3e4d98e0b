"""
Base Exception Class

Only the base exception lives here; specialized exceptions are in their
themed modules.
"""

from typing import Any


class RelayError(Exception):
    """
    Base exception for all request relay errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request / tenant correlation
    - Structured error logging

    Attributes:
        message: Error message
        request_id: Request id for correlation (if available)
        tenant_id: Tenant the failing operation belongs to (if available)
        details: Additional error details (dict)

    Example:
        raise TopologyError(
            "Failed to declare queue",
            tenant_id="acme",
            details={"queue": "perform-request-acme"},
        )
    """

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        tenant_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.request_id = request_id
        self.tenant_id = tenant_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dict with error_type, message, request_id, tenant_id and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "tenant_id": self.tenant_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "RelayError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        request_str = f", request_id='{self.request_id}'" if self.request_id else ""
        tenant_str = f", tenant_id='{self.tenant_id}'" if self.tenant_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{request_str}{tenant_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        tenant_id: str | None = None,
        **details
    ) -> "RelayError":
        """
        Create a relay error from another exception.

        Useful for wrapping third-party exceptions (redis, httpx) with context.

        Example:
            >>> try:
            ...     await client.xadd(stream, fields)
            ... except RedisError as e:
            ...     raise PublishError.from_exception(e, tenant_id="acme", exchange=name)
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, request_id=request_id, tenant_id=tenant_id, details=error_details)


class ConfigurationError(RelayError):
    """Raised when configuration is invalid or missing."""
    pass
