"""Value types passed between the transfer engine components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class OperationType(str, Enum):
    """Checkpoint namespaces, one per transfer mode."""

    EXPORTS = "exports"
    IMPORTS = "imports"
    DELETES = "deletes"


class TransferState(str, Enum):
    """Lifecycle of a single transfer run."""

    IDLE = "idle"
    RESUMING = "resuming"
    TRANSFERRING = "transferring"  # Fetching pages (export) or sending batches
    DRAINING = "draining"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


@dataclass
class PageResult:
    """
    One page of an export, tagged with its position in the pagination.

    Attributes:
        page_index: 0-based position of the page within this run
        records: Raw route dictionaries as returned by the API
        next_cursor: Cursor for the page after this one (None on the last page)
    """

    page_index: int
    records: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


@dataclass
class Batch(Generic[T]):
    """A fixed-size slice of the canonical record sequence sent in one request."""

    index: int
    items: list[T]

    def __len__(self) -> int:
        return len(self.items)


def split_batches(items: list[T], size: int) -> list[Batch[T]]:
    """
    Split items into consecutive batches of at most `size` entries.

    Args:
        items: Records in canonical order
        size: Maximum entries per batch (must be positive)

    Returns:
        Batches numbered 0..N-1; empty input gives no batches
    """
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    return [
        Batch(index=i, items=items[start : start + size])
        for i, start in enumerate(range(0, len(items), size))
    ]


@dataclass
class ExportProgress:
    """
    Resume state of an export: what has been durably written so far.

    Attributes:
        cursor: Cursor of the first page not yet written (None = from the start)
        route_count: Data rows written to the output file
        offset: File position just after the last written row
        pages_written: Pages flushed during the current run
    """

    cursor: str | None = None
    route_count: int = 0
    offset: int = 0
    pages_written: int = 0

    def to_checkpoint_data(self) -> dict[str, Any]:
        return {"next": self.cursor, "routeCount": self.route_count, "offset": self.offset}

    @classmethod
    def from_checkpoint_data(cls, data: dict[str, Any]) -> "ExportProgress":
        return cls(
            cursor=data.get("next") or None,
            route_count=int(data.get("routeCount") or 0),
            offset=int(data.get("offset") or 0),
        )
