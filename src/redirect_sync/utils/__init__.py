"""Utility functions and exceptions."""

from .exceptions import (
    BatchRejectedError,
    CSVReadError,
    GraphQLError,
    PageFetchTimeout,
    RateLimitError,
    RecordViolation,
    RedirectSyncError,
    RedirectValidationError,
    RemoteAPIError,
    RemoteNetworkError,
    TransferAborted,
    TransferInterrupted,
    ValidationError,
)

__all__ = [
    "RedirectSyncError",
    "ValidationError",
    "CSVReadError",
    "RecordViolation",
    "RedirectValidationError",
    "RemoteAPIError",
    "RateLimitError",
    "GraphQLError",
    "BatchRejectedError",
    "RemoteNetworkError",
    "PageFetchTimeout",
    "TransferInterrupted",
    "TransferAborted",
]
