"""Batched import, delete and reset of redirects.

Input rows are read in canonical order and split into fixed-size batches, so
batch N always holds the same rows for the same file. The checkpoint counter
is the index of the first batch not yet confirmed by the server:

    batches:    [0] [1] [2] [3] [4]
    confirmed:   x   x   x
    checkpoint:            counter=3

With concurrency > 1, a window of batches is sent at once and the checkpoint
only advances over the contiguous run of successes at the start of the
window; a failed batch and everything after it are sent again on resume.
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..client.rewriter import RewriterClient
from ..config import SyncConfig
from ..core.csv_io import encode, read_records, write_paths
from ..core.validator import validate_records
from ..models.redirect import Redirect, RedirectPath
from ..models.transfer import Batch, OperationType, TransferState, split_batches
from ..observability.logger import LogContext
from ..persistence.checkpoint import CheckpointEntry, CheckpointStore, compute_fingerprint
from ..utils.exceptions import BatchRejectedError, CSVReadError, TransferInterrupted
from .interrupts import InterruptGuard
from .retry import retry_with_backoff

logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT")
ModelT = TypeVar("ModelT", bound=BaseModel)

ConfirmResume = Callable[[CheckpointEntry], bool]
SendBatch = Callable[[list[Any]], Awaitable[bool | None]]

RESET_FILE_PREFIX = ".redirects-reset-"


class BatchTransfer:
    """
    Sends redirect CSVs to the Rewriter API in checkpointed batches.

    Operations:
    - import_redirects: SaveMany per batch, optionally preceded by a reset
    - delete_redirects: DeleteMany per batch
    - reset: delete remote redirects missing from an import file
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
        Initialize BatchTransfer.

        Args:
            client: Rewriter API client
            store: Checkpoint store
            config: Full configuration (remote identity, retry and transfer settings)
            console: Rich console for progress bars
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

    @property
    def account(self) -> str:
        return self.config.remote.account if self.config.remote else ""

    @property
    def workspace(self) -> str:
        return self.config.remote.workspace if self.config.remote else ""

    async def import_redirects(self, csv_path: str | Path, reset: bool = False) -> list[str]:
        """
        Import every redirect of a CSV file.

        Args:
            csv_path: Input file (from;to;type;endDate;binding)
            reset: Delete remote redirects missing from the file first

        Returns:
            Source paths of all imported redirects, in canonical order

        Raises:
            CSVReadError: The file cannot be read
            RedirectValidationError: Rows fail validation; nothing is sent
        """
        path = Path(csv_path)
        redirects, fingerprint = self._load(path, Redirect)

        with LogContext(operation=OperationType.IMPORTS.value, fingerprint=fingerprint[:12]):
            if reset:
                await self.reset(path, redirects)

            await self._run_batches(
                OperationType.IMPORTS,
                fingerprint,
                redirects,
                self.client.import_batch,
                "Importing routes...",
            )

        return [r.from_ for r in redirects]

    async def delete_redirects(self, csv_path: str | Path) -> list[str]:
        """
        Delete every redirect listed in a CSV file.

        Args:
            csv_path: Input file; only the 'from' column is used

        Returns:
            Deleted source paths, in canonical order
        """
        path = Path(csv_path)
        records, fingerprint = self._load(path, RedirectPath)
        paths = [r.from_ for r in records]

        with LogContext(operation=OperationType.DELETES.value, fingerprint=fingerprint[:12]):
            await self._run_batches(
                OperationType.DELETES,
                fingerprint,
                paths,
                self.client.delete_batch,
                "Deleting routes...",
            )

        return paths

    async def reset(self, csv_path: Path, redirects: list[Redirect]) -> int:
        """
        Delete remote redirects that are not part of an import.

        The stale paths are written to a scratch CSV next to the input and
        removed through the regular delete flow; the scratch file is always
        removed afterwards.

        Args:
            csv_path: The import file (locates the scratch file)
            redirects: Records about to be imported

        Returns:
            Number of remote redirects deleted
        """
        existing = await self.list_remote_paths()
        imported = {r.from_ for r in redirects}
        # Imported paths keep '%3B' encoded, remote paths hold the raw delimiter
        stale = [
            p for p in dict.fromkeys(existing) if p not in imported and encode(p) not in imported
        ]

        logger.info("Reset computed", remote=len(existing), imported=len(imported), stale=len(stale))
        if not stale:
            self.console.print("No remote redirects to remove.")
            return 0

        self.console.print(f"Removing {len(stale)} redirects missing from {csv_path.name}")
        tag = compute_fingerprint(self.account, self.workspace, csv_path)[:12]
        scratch = csv_path.parent / f"{RESET_FILE_PREFIX}{tag}.csv"
        write_paths(scratch, stale)
        try:
            await self.delete_redirects(scratch)
        finally:
            scratch.unlink(missing_ok=True)
        return len(stale)

    async def list_remote_paths(self) -> list[str]:
        """
        Page through the remote redirects and collect their source paths.

        Returns:
            Every remote 'from' value, in pagination order
        """
        paths: list[str] = []
        cursor: str | None = None

        with self.console.status("Listing remote redirects....") as status:
            while True:
                self.guard.check()
                page = await retry_with_backoff(
                    lambda: self.client.export_page(cursor),
                    self.config.retry,
                    description="export_page",
                    sleep=self._sleep,
                )
                paths.extend(str(route["from"]) for route in page.routes if route.get("from"))
                status.update(f"Listing remote redirects.... {len(paths)} found")

                cursor = page.next
                if not cursor:
                    break

        return paths

    def _load(self, path: Path, schema: type[ModelT]) -> tuple[list[ModelT], str]:
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error("Error reading file", csv_path=str(path), error=str(e))
            raise CSVReadError(str(path), str(e), original_error=e) from e

        rows = read_records(path)
        records = validate_records(schema, rows)
        fingerprint = compute_fingerprint(self.account, self.workspace, path, content)
        return records, fingerprint

    def _resume_index(self, operation: OperationType, fingerprint: str, total: int) -> int:
        self.store.load()
        entry = self.store.get(operation, fingerprint)
        if entry is None or entry.counter <= 0:
            return 0

        if entry.counter > total:
            logger.warning(
                "Checkpoint points past the last batch, starting over",
                counter=entry.counter,
                batches=total,
            )
            self.store.clear(operation, fingerprint)
            return 0

        self.console.print(
            f"[yellow]Found an unfinished {operation.value[:-1]}[/yellow] "
            f"({entry.counter}/{total} batches done)."
        )
        if self.confirm_resume is not None and not self.confirm_resume(entry):
            self.store.clear(operation, fingerprint)
            return 0

        logger.info("Resuming transfer", batch=entry.counter, batches=total)
        return entry.counter

    async def _run_batches(
        self,
        operation: OperationType,
        fingerprint: str,
        items: list[ItemT],
        send: SendBatch,
        description: str,
    ) -> None:
        transfer = self.config.transfer
        batches = split_batches(items, transfer.batch_size)
        total = len(batches)

        self.state = TransferState.RESUMING
        next_index = self._resume_index(operation, fingerprint, total)

        def save_on_interrupt() -> None:
            self.store.save(operation, fingerprint, next_index)

        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        )

        self.state = TransferState.TRANSFERRING
        try:
            with self.guard.on_interrupt(save_on_interrupt), progress:
                task = progress.add_task(description, total=total, completed=next_index)

                for window_start in range(next_index, total, max(transfer.concurrency, 1)):
                    self.guard.check()
                    window = batches[window_start : window_start + transfer.concurrency]
                    results = await asyncio.gather(
                        *(self._send_batch(operation, batch, send) for batch in window),
                        return_exceptions=True,
                    )

                    failure: BaseException | None = None
                    for batch, result in zip(window, results):
                        if isinstance(result, BaseException):
                            failure = result
                            break
                        next_index = batch.index + 1
                        progress.advance(task)

                    self.store.save(operation, fingerprint, next_index)
                    if failure is not None:
                        logger.error(
                            "Batch failed",
                            batch=next_index,
                            batches=total,
                            error=str(failure),
                        )
                        raise failure

        except asyncio.CancelledError:
            if self.guard.interrupted:
                self.state = TransferState.INTERRUPTED
                raise TransferInterrupted() from None
            raise
        except TransferInterrupted:
            self.state = TransferState.INTERRUPTED
            raise
        except Exception:
            self.state = TransferState.FAILED
            raise

        self.state = TransferState.COMPLETED
        self.store.clear(operation, fingerprint)
        logger.info("Transfer finished", items=len(items), batches=total)
        self.console.print("[green]Finished![/green]")

    async def _send_batch(self, operation: OperationType, batch: Batch[Any], send: SendBatch) -> None:
        payload = list(batch.items)
        result = await retry_with_backoff(
            lambda: send(payload),
            self.config.retry,
            description=f"{operation.value} batch {batch.index}",
            sleep=self._sleep,
        )
        if result is False:
            raise BatchRejectedError(operation.value, len(batch))
        logger.debug("Batch sent", batch=batch.index, size=len(batch))
