"""Transfer engine for moving redirects between CSV files and the Rewriter API."""

from .batches import BatchTransfer
from .exporter import RedirectExporter
from .interrupts import InterruptGuard
from .retry import ErrorType, RetryContext, classify_error, retry_with_backoff
from .runner import TransferRunner
from .write_queue import OrderedWriteQueue

__all__ = [
    "BatchTransfer",
    "RedirectExporter",
    "InterruptGuard",
    "ErrorType",
    "RetryContext",
    "classify_error",
    "retry_with_backoff",
    "TransferRunner",
    "OrderedWriteQueue",
]
