"""Resumable export of remote redirects to CSV.

Flow:
----
1. Look up the export checkpoint for (account, workspace, file). If it holds
   a cursor and the operator agrees, truncate the file back to the saved
   offset and continue from that cursor; otherwise start a fresh file.
2. Fetch pages one after another (each cursor comes from the previous page),
   every fetch retried with backoff and raced against page_timeout.
3. Hand each page to the OrderedWriteQueue without waiting for it to be
   written, keeping at most export_concurrency submissions in flight.
4. After each written page, checkpoint {next, routeCount, offset}.
5. On success clear the checkpoint.

Failure Handling:
----------------
- Page fetch timeout: the cursor is assumed corrupt. The checkpoint is
  cleared and PageFetchTimeout (retryable) is raised, so the next attempt
  starts again from page 0.
- Interrupt: the guard callback saves the checkpoint; nothing else is saved.
- Anything else: in-flight writes settle, the checkpoint of the last written
  page is saved, and the error propagates.

Saving the byte offset with the cursor makes resume idempotent: rows written
after the last checkpoint are cut off before the same pages are fetched again.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TextIO

import structlog
from rich.console import Console
from rich.status import Status

from ..client.response_models import ExportPage
from ..client.rewriter import RewriterClient
from ..config import SyncConfig
from ..constants import DRAIN_POLL_INTERVAL_S
from ..core.csv_io import header_line
from ..models.transfer import ExportProgress, OperationType, PageResult, TransferState
from ..observability.logger import LogContext
from ..persistence.checkpoint import CheckpointEntry, CheckpointStore, compute_fingerprint
from ..utils.exceptions import PageFetchTimeout, RedirectSyncError, TransferInterrupted
from .interrupts import InterruptGuard
from .retry import RetryContext, retry_with_backoff
from .write_queue import OrderedWriteQueue

logger = structlog.get_logger(__name__)

ConfirmResume = Callable[[CheckpointEntry], bool]


class RedirectExporter:
    """
    Streams every remote redirect into a CSV file, resumably.

    Attributes:
        state: Current TransferState of the run
        progress: What has been durably written so far
    """

    def __init__(
        self,
        client: RewriterClient,
        store: CheckpointStore,
        config: SyncConfig,
        console: Console | None = None,
        guard: InterruptGuard | None = None,
        confirm_resume: ConfirmResume | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize RedirectExporter.

        Args:
            client: Rewriter API client
            store: Checkpoint store
            config: Full configuration (remote identity, retry and transfer settings)
            console: Rich console for the progress spinner
            guard: Interrupt guard; a private, uninstalled one by default
            confirm_resume: Asked before resuming; resumes unconditionally when None
            sleep: Backoff sleep, injectable for tests
        """
        self.client = client
        self.store = store
        self.config = config
        self.console = console or Console()
        self.guard = guard or InterruptGuard()
        self.confirm_resume = confirm_resume
        self._sleep = sleep

        self.state = TransferState.IDLE
        self.progress = ExportProgress()
        self._fingerprint = ""
        self._sink: TextIO | None = None
        self._status: Status | None = None
        self._checkpointing = True

    @property
    def account(self) -> str:
        return self.config.remote.account if self.config.remote else ""

    @property
    def workspace(self) -> str:
        return self.config.remote.workspace if self.config.remote else ""

    async def export(self, csv_path: str | Path) -> int:
        """
        Export all redirects to csv_path.

        Args:
            csv_path: Output file

        Returns:
            Total number of rows in the file (including rows from a resumed run)

        Raises:
            PageFetchTimeout: A page fetch hung; checkpoint cleared
            TransferInterrupted: SIGINT received; checkpoint saved
        """
        path = Path(csv_path)
        self._fingerprint = compute_fingerprint(self.account, self.workspace, path)
        self._checkpointing = True

        with LogContext(operation=OperationType.EXPORTS.value, fingerprint=self._fingerprint[:12]):
            self.state = TransferState.RESUMING
            self.progress = self._resume_progress(path)

            with self._open_sink(path) as sink, self.guard.on_interrupt(self._save_on_interrupt):
                self._sink = sink
                try:
                    with self.console.status(self._status_text()) as status:
                        self._status = status
                        await self._transfer(sink)
                finally:
                    self._status = None
                    self._sink = None

            self.state = TransferState.COMPLETED
            self.store.clear(OperationType.EXPORTS, self._fingerprint)

            logger.info("Export finished", csv_path=str(path), routes=self.progress.route_count)
            self.console.print(
                f"[green]Finished![/green] {self.progress.route_count} redirects exported to {path}"
            )
            return self.progress.route_count

    def _resume_progress(self, path: Path) -> ExportProgress:
        self.store.load()
        entry = self.store.get(OperationType.EXPORTS, self._fingerprint)
        if entry is None:
            return ExportProgress()

        progress = ExportProgress.from_checkpoint_data(entry.data)
        if progress.cursor is None:
            self.store.clear(OperationType.EXPORTS, self._fingerprint)
            return ExportProgress()

        if not path.exists() or path.stat().st_size < progress.offset:
            logger.warning(
                "Export checkpoint does not match output file, starting over",
                csv_path=str(path),
                offset=progress.offset,
            )
            self.store.clear(OperationType.EXPORTS, self._fingerprint)
            return ExportProgress()

        self.console.print(
            f"[yellow]Found an unfinished export to {path}[/yellow] "
            f"({progress.route_count} redirects already written)."
        )
        if self.confirm_resume is not None and not self.confirm_resume(entry):
            self.store.clear(OperationType.EXPORTS, self._fingerprint)
            return ExportProgress()

        logger.info("Resuming export", cursor=progress.cursor, routes=progress.route_count)
        return progress

    def _open_sink(self, path: Path) -> TextIO:
        if self.progress.cursor is None:
            sink = open(path, "w", encoding="utf-8", newline="")
            sink.write(header_line())
            sink.flush()
            self.progress.offset = sink.tell()
            return sink

        sink = open(path, "r+", encoding="utf-8", newline="")
        sink.truncate(self.progress.offset)
        sink.seek(self.progress.offset)
        return sink

    async def _transfer(self, sink: TextIO) -> None:
        transfer = self.config.transfer
        queue = OrderedWriteQueue(
            sink,
            write_batch_size=transfer.write_batch_size,
            on_page_written=self._on_page_written,
        )
        in_flight: deque[asyncio.Task[int]] = deque()
        cursor = self.progress.cursor
        page_index = 0

        self.state = TransferState.TRANSFERRING
        try:
            while True:
                self.guard.check()
                page = await self._fetch_page(cursor)

                result = PageResult(page_index, page.routes, page.next)
                in_flight.append(asyncio.create_task(queue.add_page(result)))
                page_index += 1
                if len(in_flight) >= transfer.export_concurrency:
                    await in_flight.popleft()

                cursor = page.next
                if not cursor:
                    break

            self.state = TransferState.DRAINING
            while in_flight:
                await in_flight.popleft()
            while queue.queue_size() > 0 and queue.is_draining:
                await asyncio.sleep(DRAIN_POLL_INTERVAL_S)
            if queue.queue_size() > 0:
                raise RedirectSyncError(
                    f"Export stopped with {queue.queue_size()} unwritten pages "
                    f"(next expected page {queue.next_expected_index})"
                )

        except asyncio.CancelledError:
            await _cancel_all(in_flight)
            if self.guard.interrupted:
                self.state = TransferState.INTERRUPTED
                raise TransferInterrupted() from None
            raise
        except TransferInterrupted:
            self.state = TransferState.INTERRUPTED
            await _cancel_all(in_flight)
            raise
        except PageFetchTimeout:
            self.state = TransferState.FAILED
            self._checkpointing = False
            await _cancel_all(in_flight)
            self.store.clear(OperationType.EXPORTS, self._fingerprint)
            raise
        except Exception as e:
            self.state = TransferState.FAILED
            await asyncio.gather(*in_flight, return_exceptions=True)
            self._checkpointing = False
            if self.progress.cursor is not None:
                self._save_checkpoint()
            logger.error(
                "Export failed",
                error=str(e),
                routes=self.progress.route_count,
                cursor=self.progress.cursor,
            )
            raise

    async def _fetch_page(self, cursor: str | None) -> ExportPage:
        timeout = self.config.transfer.page_timeout
        try:
            return await asyncio.wait_for(
                retry_with_backoff(
                    lambda: self.client.export_page(cursor),
                    self.config.retry,
                    description="export_page",
                    on_retry=self._on_retry,
                    sleep=self._sleep,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Page fetch timed out, restarting from the first page", timeout=timeout)
            raise PageFetchTimeout(cursor, timeout) from e

    def _on_page_written(self, page: PageResult) -> None:
        progress = self.progress
        progress.cursor = page.next_cursor
        progress.route_count += len(page.records)
        progress.pages_written += 1
        if self._sink is not None:
            progress.offset = self._sink.tell()

        if self._status is not None:
            self._status.update(self._status_text())
        if self._checkpointing and not self.guard.interrupted:
            self._save_checkpoint()

    def _on_retry(self, context: RetryContext, attempt: int, delay: float) -> None:
        if self._status is not None:
            self._status.update(
                f"{self._status_text()} (retrying after {context.error_type.value}, "
                f"attempt {attempt}, waiting {delay:.1f}s)"
            )

    def _save_checkpoint(self) -> None:
        self.store.save(
            OperationType.EXPORTS,
            self._fingerprint,
            self.progress.pages_written,
            self.progress.to_checkpoint_data(),
        )

    def _save_on_interrupt(self) -> None:
        if self._checkpointing and self.progress.cursor is not None:
            self._save_checkpoint()
        self._checkpointing = False

    def _status_text(self) -> str:
        return f"Exporting redirects.... {self.progress.route_count} Done"


async def _cancel_all(tasks: deque[asyncio.Task[int]]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    tasks.clear()
