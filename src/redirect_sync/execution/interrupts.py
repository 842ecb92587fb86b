"""SIGINT handling for transfers.

On interrupt the guard runs every registered callback exactly once (these
persist the latest checkpoint synchronously) and then cancels the transfer
task. The engine turns the cancellation into TransferInterrupted so the CLI
can exit with code 130.
"""

import asyncio
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import structlog

from ..utils.exceptions import TransferInterrupted

logger = structlog.get_logger(__name__)

InterruptCallback = Callable[[], None]


class InterruptGuard:
    """Installs a SIGINT handler that persists progress before stopping."""

    def __init__(self) -> None:
        self._callbacks: list[InterruptCallback] = []
        self._interrupted = False
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def interrupted(self) -> bool:
        return self._interrupted

    def install(self, task: asyncio.Task | None = None) -> None:
        """
        Route SIGINT to this guard for the running event loop.

        Args:
            task: Task to cancel after callbacks ran (default: the current task)
        """
        self._loop = asyncio.get_running_loop()
        self._task = task or asyncio.current_task()
        try:
            self._loop.add_signal_handler(signal.SIGINT, self._handle_signal)
        except (NotImplementedError, RuntimeError):
            # Platforms without loop signal support fall back to KeyboardInterrupt
            logger.debug("Signal handlers not supported by this event loop")
            self._loop = None

    def uninstall(self) -> None:
        if self._loop is not None:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop = None
        self._task = None

    @contextmanager
    def on_interrupt(self, callback: InterruptCallback) -> Iterator[None]:
        """
        Register a callback for the duration of a block.

        Args:
            callback: Synchronous function persisting current progress
        """
        self._callbacks.append(callback)
        try:
            yield
        finally:
            self._callbacks.remove(callback)

    def trigger(self) -> None:
        """Mark the transfer interrupted and run callbacks (only the first time)."""
        if self._interrupted:
            return
        self._interrupted = True

        logger.warning("Interrupt received, saving progress")
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                logger.error("Failed to save progress on interrupt", error=str(e))

    def check(self) -> None:
        """
        Raise if an interrupt was received.

        Raises:
            TransferInterrupted: If trigger() has run
        """
        if self._interrupted:
            raise TransferInterrupted()

    def _handle_signal(self) -> None:
        self.trigger()
        if self._task is not None and not self._task.done():
            self._task.cancel()
