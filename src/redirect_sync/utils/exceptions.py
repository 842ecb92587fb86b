"""Custom exceptions for the redirect sync tool.

Exception Hierarchy:
-------------------
RedirectSyncError (base)
├── ValidationError
│   ├── CSVReadError              # Unreadable or malformed input CSV
│   └── RedirectValidationError   # Rows failing the record schema
├── RemoteAPIError (base for API errors)
│   ├── RateLimitError            # HTTP 429 Too Many Requests
│   ├── GraphQLError              # "errors" array in a GraphQL response
│   └── BatchRejectedError        # Mutation answered false
├── RemoteNetworkError            # Connection reset, timeout, DNS failure
├── PageFetchTimeout              # Export page fetch exceeded its wall clock
├── TransferInterrupted           # SIGINT observed, checkpoint persisted
└── TransferAborted               # Fatal error or restart budget exhausted

Usage Guidelines:
----------------
1. The Rewriter client converts every httpx failure into RemoteAPIError or
   RemoteNetworkError; nothing above the client inspects httpx types.
2. execution.retry.classify_error maps these to an ErrorType and decides
   whether a retry makes sense.
3. Filesystem failures stay plain OSError and are never retried.
"""

from typing import Any


class RedirectSyncError(Exception):
    """Base exception for all redirect sync errors."""

    pass


class ValidationError(RedirectSyncError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        line_number: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        """
        Initialize ValidationError.

        Args:
            message: Error message.
            line_number: Optional line number where error occurred.
            original_error: Optional original exception that caused this error.
        """
        super().__init__(message)
        self.line_number = line_number
        self.original_error = original_error


class CSVReadError(ValidationError):
    """Raised when a CSV file cannot be read or parsed."""

    def __init__(self, path: str, message: str, original_error: Exception | None = None) -> None:
        super().__init__(f"Error reading file: {path}: {message}", original_error=original_error)
        self.path = path


class RecordViolation:
    """A single schema violation found while validating input rows."""

    __slots__ = ("index", "field", "message", "record")

    def __init__(self, index: int, field: str, message: str, record: dict[str, Any]) -> None:
        self.index = index
        self.field = field
        self.message = message
        self.record = record

    def __repr__(self) -> str:
        return f"RecordViolation(index={self.index}, field={self.field!r}, message={self.message!r})"


class RedirectValidationError(ValidationError):
    """Raised when one or more rows fail the record schema."""

    def __init__(self, violations: list[RecordViolation]) -> None:
        """
        Initialize RedirectValidationError.

        Args:
            violations: Every violation found, in row order.
        """
        super().__init__(f"{len(violations)} validation error(s) in input")
        self.violations = violations


class RemoteAPIError(RedirectSyncError):
    """Base exception for Rewriter API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize RemoteAPIError.

        Args:
            message: Error message.
            status_code: Optional HTTP status code.
            headers: Response headers (lower-cased names), used for Retry-After.
        """
        super().__init__(message)
        self.status_code = status_code
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}


class RateLimitError(RemoteAPIError):
    """Raised when the Rewriter API answers 429 Too Many Requests."""

    def __init__(self, message: str, headers: dict[str, str] | None = None) -> None:
        super().__init__(message, status_code=429, headers=headers)

    @property
    def retry_after(self) -> str | None:
        """Raw Retry-After header value, if the server sent one."""
        return self.headers.get("retry-after")


class GraphQLError(RemoteAPIError):
    """Raised when a GraphQL response carries an errors array."""

    def __init__(self, errors: list[dict[str, Any]], status_code: int | None = None) -> None:
        """
        Initialize GraphQLError.

        Args:
            errors: The "errors" entries of the response.
            status_code: HTTP status of the response, if it was an error status.
        """
        messages = [str(e.get("message", "")) for e in errors]
        super().__init__("\n".join(messages) or "GraphQL request failed", status_code=status_code)
        self.errors = errors

    @property
    def messages(self) -> list[str]:
        """Messages of every GraphQL error, in response order."""
        return [str(e.get("message", "")) for e in self.errors]


class BatchRejectedError(RemoteAPIError):
    """Raised when an import or delete mutation reports failure."""

    def __init__(self, operation: str, size: int) -> None:
        super().__init__(f"{operation} rejected a batch of {size} entries")
        self.operation = operation
        self.size = size


class RemoteNetworkError(RedirectSyncError):
    """Raised when the Rewriter API cannot be reached (reset, timeout, DNS)."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class PageFetchTimeout(RedirectSyncError):
    """Raised when an export page fetch exceeds its wall-clock limit."""

    def __init__(self, cursor: str | None, timeout: float) -> None:
        super().__init__(f"Export page fetch timed out after {timeout:g}s")
        self.cursor = cursor
        self.timeout = timeout


class TransferInterrupted(RedirectSyncError):
    """Raised after an interrupt signal once progress has been persisted."""

    def __init__(self, message: str = "Transfer interrupted") -> None:
        super().__init__(message)


class TransferAborted(RedirectSyncError):
    """Raised when a transfer cannot continue; carries the process exit code."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code
