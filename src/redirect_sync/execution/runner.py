"""
Transfer Runner - restarts failed transfers and reports errors.

Each call-level failure has already been retried with backoff by the time it
reaches the runner. The runner adds a second, coarser loop on top: when a
transfer fails with a retryable error it waits restart_interval and starts the
whole operation again, which resumes from the checkpoint the engine saved.

    attempt 0 ──fail(retryable)──> wait ──> attempt 1 ──...──> attempt N ──> TransferAborted
        └──fail(fatal)──> TransferAborted(exit_code=1)
        └──interrupt────> TransferInterrupted (exit code 130 in the CLI)
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from rich.console import Console

from ..config import TransferConfig
from ..core.validator import format_violations
from ..utils.exceptions import (
    CSVReadError,
    GraphQLError,
    RedirectValidationError,
    TransferAborted,
    TransferInterrupted,
)
from .interrupts import InterruptGuard
from .retry import ErrorType, RetryContext, classify_error, describe_filesystem_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TransferRunner:
    """
    Runs one transfer operation with a bounded number of restarts.
    """

    def __init__(
        self,
        config: TransferConfig,
        console: Console,
        guard: InterruptGuard | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize TransferRunner.

        Args:
            config: Transfer configuration (max_restarts, restart_interval)
            console: Rich console for output
            guard: Interrupt guard shared with the engines
            sleep: Sleep used between restarts, injectable for tests
        """
        self.config = config
        self.console = console
        self.guard = guard or InterruptGuard()
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """
        Run an operation until it succeeds, fails fatally or runs out of restarts.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            description: Name of the transfer for messages ("export", "import", ...)

        Returns:
            The operation's result

        Raises:
            TransferInterrupted: SIGINT received during an attempt or a wait
            TransferAborted: Fatal error, or restarts exhausted
        """
        max_restarts = self.config.max_restarts

        for attempt in range(max_restarts + 1):
            try:
                return await operation()
            except TransferInterrupted:
                raise
            except asyncio.CancelledError:
                if self.guard.interrupted:
                    raise TransferInterrupted() from None
                raise
            except Exception as e:
                context = classify_error(e)
                self.report_error(e, context, description)

                if not context.retryable:
                    raise TransferAborted(f"{description} failed: {e}") from e

                if attempt >= max_restarts:
                    logger.error("Restart budget exhausted", operation=description, restarts=attempt)
                    self.console.print(
                        f"[red]Giving up after {max_restarts} restarts.[/red] "
                        "Run the same command again to resume."
                    )
                    raise TransferAborted(f"{description} failed after {max_restarts} restarts") from e

            await self._wait_before_restart(attempt + 1, description)

        # Only reachable with a negative restart budget
        raise TransferAborted(f"{description} was not attempted")

    def report_error(self, error: BaseException, context: RetryContext, description: str) -> None:
        """
        Print a failure in operator terms and log it.

        Args:
            error: The failure
            context: Its classification
            description: Name of the transfer
        """
        logger.error(
            "Transfer failed",
            operation=description,
            error_type=context.error_type.value,
            retryable=context.retryable,
            error=str(error),
        )

        console = self.console
        if isinstance(error, RedirectValidationError):
            console.print(f"[red]{format_violations(error)}[/red]")
        elif isinstance(error, CSVReadError):
            console.print(f"[red]{error}[/red]")
        elif isinstance(error, GraphQLError):
            console.print("[red]The Rewriter API returned errors:[/red]")
            for message in error.messages:
                console.print(f"  - {message}")
        elif context.error_type is ErrorType.FILESYSTEM_ERROR:
            console.print(f"[red]{describe_filesystem_error(error)}[/red]")
            console.print(f"[dim]{error}[/dim]")
        elif context.error_type is ErrorType.RATE_LIMIT:
            console.print("[red]Rate limited by the Rewriter API.[/red]")
        else:
            console.print(f"[red]ERROR ({context.error_type.value}):[/red] {error}")

    async def _wait_before_restart(self, restart: int, description: str) -> None:
        interval = self.config.restart_interval
        logger.info(
            "Restarting transfer",
            operation=description,
            restart=restart,
            max_restarts=self.config.max_restarts,
            wait=interval,
        )
        self.console.print(f"[yellow]Retrying in {interval:g} seconds...[/yellow]")
        self.console.print("Press CTRL+C to abort")
        try:
            await self._sleep(interval)
        except asyncio.CancelledError:
            if self.guard.interrupted:
                raise TransferInterrupted() from None
            raise
