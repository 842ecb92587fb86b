"""Data models for redirects and transfer state."""

from .redirect import Redirect, RedirectPath, RedirectType
from .transfer import (
    Batch,
    ExportProgress,
    OperationType,
    PageResult,
    TransferState,
    split_batches,
)

__all__ = [
    "Redirect",
    "RedirectPath",
    "RedirectType",
    "Batch",
    "ExportProgress",
    "OperationType",
    "PageResult",
    "TransferState",
    "split_batches",
]
