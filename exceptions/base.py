"""
Base exception classes for the marketplace core.
"""


class MarketplaceException(Exception):
    """
    Base exception for all marketplace errors.

    All custom exceptions in the application should inherit from this class.
    This allows catching all domain exceptions with a single handler at the
    operation boundary, where they are turned into user-facing notices.

    Attributes:
        message: Human-readable error message
        details: Optional dict with additional context (entity IDs, states, etc.)
    """

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            details: Optional dict with additional context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation with context."""
        if self.details:
            details_str = ', '.join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.__class__.__name__}('{self.message}', {details_str})"
        return f"{self.__class__.__name__}('{self.message}')"


class AuthRequiredException(MarketplaceException):
    """Raised when an operation needs a signed-in user and there is none."""

    def __init__(self, operation: str):
        super().__init__(
            f"Sign in required for {operation}",
            details={'operation': operation}
        )
        self.operation = operation


class PermissionDeniedException(MarketplaceException):
    """Raised when the store or the realtime channel rejects the caller."""

    def __init__(self, resource: str, reason: str = "access denied"):
        super().__init__(
            f"Permission denied on {resource}: {reason}",
            details={'resource': resource, 'reason': reason}
        )
        self.resource = resource
        self.reason = reason


class RemoteReadFailedException(MarketplaceException):
    """Raised when a read from the remote store fails."""

    def __init__(self, resource: str, reason: str):
        super().__init__(
            f"Could not load {resource}: {reason}",
            details={'resource': resource, 'reason': reason}
        )
        self.resource = resource
        self.reason = reason


class UnsupportedColumnException(MarketplaceException):
    """Raised when the store schema lacks a column the write tried to set."""

    def __init__(self, table: str, column: str):
        super().__init__(
            f"Column {table}.{column} is not supported by the current schema",
            details={'table': table, 'column': column}
        )
        self.table = table
        self.column = column
