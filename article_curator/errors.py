"""Exception hierarchy for the article curator."""

from typing import Any


class CuratorError(Exception):
    """Base exception for the article curator."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class AdapterError(CuratorError):
    """A single source failed to produce items."""

    def __init__(self, message: str, source: str | None = None, **kwargs: Any):
        super().__init__(message, kwargs)
        self.source = source


class ItemTransformError(CuratorError):
    """One raw record from a source could not be turned into an Item."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        record_id: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, kwargs)
        self.source = source
        self.record_id = record_id


class RetryExhaustedError(CuratorError):
    """All permitted attempts of an operation failed."""

    def __init__(
        self,
        attempt_count: int,
        last_error: BaseException,
        operation: str = "operation",
    ):
        self.attempt_count = attempt_count
        self.last_error = last_error
        self.operation = operation
        super().__init__(
            f"{operation} failed after {attempt_count} attempt(s). "
            f"Last error: {last_error}"
        )


class OperationTimeoutError(CuratorError, TimeoutError):
    """An operation exceeded its deadline."""

    def __init__(self, operation: str, timeout_ms: float):
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(f"Operation '{operation}' timed out after {timeout_ms:g}ms")


class FatalError(CuratorError):
    """Unrecoverable error that aborts the whole collection run."""
    pass


class ConfigurationError(FatalError):
    """Invalid or incomplete configuration."""
    pass


class NotificationError(CuratorError):
    """Delivering the notification failed."""

    def __init__(self, message: str, status: int | None = None, **kwargs: Any):
        super().__init__(message, kwargs)
        self.status = status
