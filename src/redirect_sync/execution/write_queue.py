"""Ordered write queue for export pages.

Pages are fetched concurrently and may complete in any order, but rows must
land in the output file in pagination order. Completed pages wait in a pending
map keyed by page index; a single drain loop writes the next expected page
whenever it becomes available.

    add_page(2) -> pending {2}            next_expected=0  (nothing written)
    add_page(0) -> write 0                next_expected=1
    add_page(1) -> write 1, then 2        next_expected=3

Only one drain runs at a time. A caller that arrives while a drain is running
leaves its page in the pending map; the running drain picks it up before it
stops.

A page that fails partway through its writes is cut back out of the sink and
the queue refuses further pages, so a later drain never writes it twice.
"""

import asyncio
from collections.abc import Callable
from typing import TextIO

import structlog

from ..constants import DEFAULT_WRITE_BATCH_SIZE
from ..core.csv_io import format_row
from ..models.transfer import PageResult

logger = structlog.get_logger(__name__)

PageWrittenCallback = Callable[[PageResult], None]


class OrderedWriteQueue:
    """
    Re-sequences out-of-order pages and appends their rows to a text sink.

    Features:
    - Strict page-index ordering of writes
    - Single-writer drain (re-entrant calls return immediately)
    - Chunked writes of write_batch_size rows, yielding to the loop between chunks
    - Per-page callback after the page's rows are flushed (checkpoint hook)
    - Failed page rolled back, then every later add_page re-raises the error
    """

    def __init__(
        self,
        sink: TextIO,
        write_batch_size: int = DEFAULT_WRITE_BATCH_SIZE,
        on_page_written: PageWrittenCallback | None = None,
        start_index: int = 0,
    ) -> None:
        """
        Initialize OrderedWriteQueue.

        Args:
            sink: Open text file positioned where rows should be appended
            write_batch_size: Rows formatted and written per write call
            on_page_written: Called once per page after its rows are flushed
            start_index: Index of the first page expected
        """
        if write_batch_size < 1:
            raise ValueError(f"write_batch_size must be at least 1, got {write_batch_size}")

        self.sink = sink
        self.write_batch_size = write_batch_size
        self.on_page_written = on_page_written
        self.next_expected_index = start_index
        self._pending: dict[int, PageResult] = {}
        self._draining = False
        self._failed: OSError | None = None

    def queue_size(self) -> int:
        """Pages received but not yet written."""
        return len(self._pending)

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def add_page(self, page: PageResult) -> int:
        """
        Accept a completed page and write every page that is now in order.

        Args:
            page: Fetched page tagged with its index

        Returns:
            Number of rows written by this call (0 if another drain was running
            or the page is not next in line)

        Raises:
            OSError: If writing to the sink fails, or failed on an earlier call.
                The failed page stays pending, its partial rows are truncated
                away and next_expected_index is not advanced
        """
        if self._failed is not None:
            raise self._failed

        if page.page_index < self.next_expected_index:
            logger.warning(
                "Ignoring page that was already written",
                page_index=page.page_index,
                next_expected=self.next_expected_index,
            )
            return 0

        self._pending[page.page_index] = page

        if self._draining:
            return 0

        self._draining = True
        written = 0
        try:
            while self.next_expected_index in self._pending:
                current = self._pending[self.next_expected_index]
                start = self.sink.tell()
                try:
                    await self._write_page(current)
                except OSError as e:
                    self._failed = e
                    self._rewind(start, current)
                    raise

                del self._pending[self.next_expected_index]
                self.next_expected_index += 1
                written += len(current.records)

                if self.on_page_written:
                    self.on_page_written(current)
        finally:
            self._draining = False

        return written

    async def _write_page(self, page: PageResult) -> None:
        records = page.records
        for start in range(0, len(records), self.write_batch_size):
            chunk = records[start : start + self.write_batch_size]
            self.sink.write("".join(format_row(record) for record in chunk))
            # Let fetch tasks make progress between large writes
            await asyncio.sleep(0)
        self.sink.flush()

        logger.debug("Page written", page_index=page.page_index, rows=len(records))

    def _rewind(self, position: int, page: PageResult) -> None:
        try:
            self.sink.truncate(position)
            self.sink.seek(position)
        except OSError as e:
            logger.error(
                "Could not remove partial page from output",
                page_index=page.page_index,
                position=position,
                error=str(e),
            )
        else:
            logger.warning("Partial page removed from output", page_index=page.page_index)
