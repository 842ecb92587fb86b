"""Command-line interface for Redirect Sync."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import structlog
import typer
from rich.console import Console
from rich.prompt import Confirm

from .client.rewriter import RewriterClient
from .config import SyncConfig, load_config
from .execution.batches import BatchTransfer
from .execution.exporter import RedirectExporter
from .execution.interrupts import InterruptGuard
from .execution.runner import TransferRunner
from .observability import configure_logging
from .persistence.checkpoint import CheckpointEntry, CheckpointStore
from .utils.exceptions import TransferAborted, TransferInterrupted

app = typer.Typer(
    name="redirect-sync",
    help="Redirect Sync - resumable bulk export, import and delete of URL redirects",
    add_completion=False,
)

console = Console()
logger = structlog.get_logger(__name__)

T = TypeVar("T")

EXIT_INTERRUPTED = 130

# Builds the coroutine of one attempt from the shared run resources
OperationFactory = Callable[
    [RewriterClient, CheckpointStore, InterruptGuard, Callable[[CheckpointEntry], bool]],
    Awaitable[T],
]

YES_OPTION = typer.Option(False, "--yes", "-y", help="Resume unfinished transfers without asking")
CONFIG_OPTION = typer.Option(None, "--config", help="YAML configuration file")
LOG_LEVEL_OPTION = typer.Option(
    None,
    "--log-level",
    help="Log verbosity: TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR",
)
JSON_LOGS_OPTION = typer.Option(False, "--json-logs", help="Emit logs as JSON")
LOG_FILE_OPTION = typer.Option(None, "--log-file", help="Also write logs to this file")


def _prepare(
    config_file: Path | None,
    log_level: str | None,
    json_logs: bool,
    log_file: Path | None,
) -> SyncConfig:
    """Load configuration and set up logging; exits with code 1 on bad configuration."""
    try:
        config = load_config(config_file)
    except (OSError, ValueError, TypeError) as e:
        console.print(f"\n[bold red]ERROR:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    configure_logging(
        level=log_level or config.logging.level,
        json_logs=json_logs or config.logging.format == "json",
        log_file=log_file or config.logging.file,
    )

    if config.remote is None or not config.remote.url:
        console.print("\n[bold red]ERROR:[/bold red] Rewriter API not configured")
        console.print("(Set REDIRECTS_API_URL/REDIRECTS_API_TOKEN env vars or provide --config)")
        raise typer.Exit(code=1)

    return config


def _confirm_resume(yes: bool) -> Callable[[CheckpointEntry], bool]:
    if yes:
        return lambda entry: True
    return lambda entry: Confirm.ask("Resume from where it stopped?", console=console, default=True)


def _execute(
    config: SyncConfig,
    yes: bool,
    description: str,
    factory: OperationFactory[T],
) -> T:
    """
    Run one transfer with restarts, interrupt handling and exit-code mapping.

    Exit codes: 0 success, 1 fatal error or restarts exhausted, 130 interrupted.
    """
    confirm = _confirm_resume(yes)

    async def run() -> T:
        guard = InterruptGuard()
        guard.install()
        try:
            async with RewriterClient(config.remote) as client:
                store = CheckpointStore(config.transfer.metainfo_file)
                runner = TransferRunner(config.transfer, console, guard)
                return await runner.run(lambda: factory(client, store, guard, confirm), description)
        finally:
            guard.uninstall()

    try:
        return asyncio.run(run())
    except (TransferInterrupted, KeyboardInterrupt) as e:
        logger.warning("Transfer interrupted", operation=description)
        console.print(
            "\n[yellow]Interrupted.[/yellow] Progress was saved; "
            "run the same command again to resume."
        )
        raise typer.Exit(code=EXIT_INTERRUPTED) from e
    except TransferAborted as e:
        raise typer.Exit(code=e.exit_code) from e


@app.command()
def export(
    csv_path: Path = typer.Argument(..., help="Output CSV file", dir_okay=False),
    yes: bool = YES_OPTION,
    config_file: Path | None = CONFIG_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
    json_logs: bool = JSON_LOGS_OPTION,
    log_file: Path | None = LOG_FILE_OPTION,
) -> None:
    """
    Export every remote redirect to a CSV file.

    An interrupted export resumes where it stopped. Tune with the
    EXPORT_CONCURRENCY and EXPORT_BATCH_SIZE environment variables.

    Examples:
        redirect-sync export redirects.csv
        redirect-sync export redirects.csv --yes
    """
    config = _prepare(config_file, log_level, json_logs, log_file)

    async def operation(client, store, guard, confirm) -> int:
        exporter = RedirectExporter(
            client, store, config, console=console, guard=guard, confirm_resume=confirm
        )
        return await exporter.export(csv_path)

    _execute(config, yes, "export", operation)


@app.command("import")
def import_(
    csv_path: Path = typer.Argument(..., help="CSV file to import", exists=True, dir_okay=False),
    reset: bool = typer.Option(
        False, "--reset", "-r", help="Delete remote redirects missing from the file first"
    ),
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", min=1, help="Batches sent at the same time (default: 1)"
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        "--batchSize",
        "-b",
        min=1,
        help="Redirects per request (default: 10)",
    ),
    yes: bool = YES_OPTION,
    config_file: Path | None = CONFIG_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
    json_logs: bool = JSON_LOGS_OPTION,
    log_file: Path | None = LOG_FILE_OPTION,
) -> None:
    """
    Import redirects from a CSV file.

    Examples:
        redirect-sync import redirects.csv
        redirect-sync import redirects.csv --reset -b 50
    """
    config = _prepare(config_file, log_level, json_logs, log_file)
    _apply_batch_options(config, concurrency, batch_size)

    async def operation(client, store, guard, confirm) -> list[str]:
        transfer = BatchTransfer(
            client, store, config, console=console, guard=guard, confirm_resume=confirm
        )
        return await transfer.import_redirects(csv_path, reset=reset)

    _execute(config, yes, "import", operation)


@app.command()
def delete(
    csv_path: Path = typer.Argument(
        ..., help="CSV file listing paths to delete", exists=True, dir_okay=False
    ),
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", min=1, help="Batches sent at the same time (default: 1)"
    ),
    batch_size: int | None = typer.Option(
        None,
        "--batch-size",
        "--batchSize",
        "-b",
        min=1,
        help="Paths per request (default: 10)",
    ),
    yes: bool = YES_OPTION,
    config_file: Path | None = CONFIG_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
    json_logs: bool = JSON_LOGS_OPTION,
    log_file: Path | None = LOG_FILE_OPTION,
) -> None:
    """
    Delete the redirects listed in a CSV file (only the 'from' column is used).

    Examples:
        redirect-sync delete old-redirects.csv
    """
    config = _prepare(config_file, log_level, json_logs, log_file)
    _apply_batch_options(config, concurrency, batch_size)

    async def operation(client, store, guard, confirm) -> list[str]:
        transfer = BatchTransfer(
            client, store, config, console=console, guard=guard, confirm_resume=confirm
        )
        return await transfer.delete_redirects(csv_path)

    _execute(config, yes, "delete", operation)


def _apply_batch_options(config: SyncConfig, concurrency: int | None, batch_size: int | None) -> None:
    if concurrency is not None:
        config.transfer.concurrency = concurrency
    if batch_size is not None:
        config.transfer.batch_size = batch_size


def main() -> None:
    """Entry point for the redirect-sync command."""
    app()


if __name__ == "__main__":
    main()
