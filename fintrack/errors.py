"""Errors raised by the finance state layer."""

from typing import Optional


class FinanceError(Exception):
    """Base exception for finance state errors."""

    pass


class NotAuthenticatedError(FinanceError):
    """Raised when there is no signed-in user."""

    def __init__(self, message: str = "User not authenticated"):
        self.message = message
        super().__init__(message)


class NotProvisionedError(FinanceError):
    """Raised when a backend table the provider needs does not exist."""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(
            f"{resource} table does not exist. Please run the database migration first."
        )


class RequestTimeoutError(FinanceError):
    """Raised when a backend call exceeded its bounded wait."""

    def __init__(self, operation: str, timeout: Optional[float] = None):
        self.operation = operation
        self.timeout = timeout
        if timeout is None:
            super().__init__(f"Request timeout: {operation}")
        else:
            super().__init__(f"Request timeout: {operation} took longer than {timeout:g}s")


class RemoteRejectionError(FinanceError):
    """Raised when the backend refused an operation."""

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        message = f"Backend rejected {operation}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ValidationError(FinanceError):
    """Raised when a caller passed malformed input."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Validation error: {message}")


class DuplicateRequestError(FinanceError):
    """Raised when the same mutation is already in flight."""

    def __init__(self, key: tuple):
        self.key = key
        entity, operation = key[0], key[1]
        super().__init__(f"A {operation} of this {entity} is already in progress")
