"""Error classification and retry/backoff policy.

Taxonomy:
--------
| ErrorType         | Source                                | Retried | Delay                |
|-------------------|---------------------------------------|---------|----------------------|
| rate_limit        | HTTP 429                              | yes     | Retry-After verbatim |
| server_error      | HTTP 5xx                              | yes     | exponential          |
| network_error     | reset / timeout / DNS                 | yes     | exponential          |
| client_error      | other HTTP 4xx                        | no      | -                    |
| filesystem_error  | OSError from local disk               | no      | -                    |
| validation_error  | unreadable or invalid input CSV       | no      | -                    |
| unknown           | anything else (GraphQL errors, bugs)  | no      | -                    |

Filesystem errors are never retried: a full disk stays full, and retrying
only burns the backoff budget before failing the same way.

Exponential delay for attempt n (starting at 1):

    min(base_delay * 2 ** (n - 1) * (1 + jitter), max_delay),  jitter in [0, 0.1)
"""

import asyncio
import errno
import random
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from ..config import RetryConfig
from ..constants import BACKOFF_JITTER
from ..utils.exceptions import (
    CSVReadError,
    PageFetchTimeout,
    RedirectValidationError,
    RemoteAPIError,
    RemoteNetworkError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ErrorType(str, Enum):
    """Failure categories driving retry decisions."""

    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NETWORK_ERROR = "network_error"
    FILESYSTEM_ERROR = "filesystem_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RetryContext:
    """Classification of one failed attempt."""

    error_type: ErrorType
    retryable: bool
    retry_after: float | None = None  # Seconds, rate limits only


_NETWORK_ERRORS = (
    RemoteNetworkError,
    PageFetchTimeout,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    socket.gaierror,
)

FILESYSTEM_ERROR_MESSAGES: dict[int, str] = {
    errno.ENOSPC: "No space left on device. Please free up disk space and try again.",
    errno.EMFILE: "Too many open files. Please close other applications and try again.",
    errno.ENFILE: "Too many open files. Please close other applications and try again.",
    errno.EACCES: "Permission denied. Please check file permissions and try again.",
    errno.ENOENT: "File or directory not found. Please check the file path.",
    errno.EISDIR: "Expected a file but found a directory. Please specify a file path.",
    errno.EEXIST: "File already exists and cannot be overwritten.",
    errno.ENOTDIR: "Path component is not a directory. Please check the file path.",
    errno.EROFS: "Read-only file system. Cannot write to this location.",
    errno.EPERM: "Operation not permitted. Please check your permissions.",
}


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """
    Convert a Retry-After header into seconds to wait.

    Args:
        value: Header value, either delta-seconds ("5") or an HTTP-date
        now: Reference time for HTTP-dates (defaults to the current UTC time)

    Returns:
        Seconds to wait (never negative), or None if absent or unparseable
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    reference = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - reference).total_seconds())


def _status_of(exc: BaseException) -> tuple[int | None, dict[str, str]]:
    if isinstance(exc, RemoteAPIError):
        return exc.status_code, exc.headers
    if isinstance(exc, httpx.HTTPStatusError):
        headers = {k.lower(): v for k, v in exc.response.headers.items()}
        return exc.response.status_code, headers
    return None, {}


def classify_error(exc: BaseException | None) -> RetryContext:
    """
    Map any raised error onto the retry taxonomy.

    Args:
        exc: The failure (None classifies as unknown)

    Returns:
        RetryContext with the error type, whether to retry, and the
        server-dictated delay for rate limits
    """
    if exc is None:
        return RetryContext(ErrorType.UNKNOWN, retryable=False)

    status, headers = _status_of(exc)
    if status is not None:
        if status == 429:
            return RetryContext(
                ErrorType.RATE_LIMIT,
                retryable=True,
                retry_after=parse_retry_after(headers.get("retry-after")),
            )
        if 500 <= status < 600:
            return RetryContext(ErrorType.SERVER_ERROR, retryable=True)
        if 400 <= status < 500:
            return RetryContext(ErrorType.CLIENT_ERROR, retryable=False)

    if isinstance(exc, _NETWORK_ERRORS):
        return RetryContext(ErrorType.NETWORK_ERROR, retryable=True)

    if isinstance(exc, (CSVReadError, RedirectValidationError)):
        return RetryContext(ErrorType.VALIDATION_ERROR, retryable=False)

    if isinstance(exc, OSError):
        return RetryContext(ErrorType.FILESYSTEM_ERROR, retryable=False)

    return RetryContext(ErrorType.UNKNOWN, retryable=False)


def is_retryable(exc: BaseException) -> bool:
    """Whether another attempt could succeed."""
    return classify_error(exc).retryable


def describe_filesystem_error(exc: BaseException | None) -> str:
    """
    Best-effort user-facing explanation of a filesystem failure.

    Args:
        exc: The failure, usually an OSError

    Returns:
        Message naming the likely cause
    """
    if exc is None:
        return "Unknown file system error"

    code = getattr(exc, "errno", None)
    if code in FILESYSTEM_ERROR_MESSAGES:
        return FILESYSTEM_ERROR_MESSAGES[code]

    message = getattr(exc, "strerror", None) or str(exc)
    if "stream" in message:
        return "File stream error. The file may be corrupted or inaccessible."
    if "write" in message:
        return "Failed to write to file. Please check disk space and permissions."
    return f"File system error: {message or 'Unknown error'}"


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float | None = None,
) -> float:
    """
    Exponential backoff delay with jitter, capped at max_delay.

    Args:
        attempt: 1-based number of the attempt that just failed
        base_delay: Delay after the first failure, in seconds
        max_delay: Upper bound, in seconds
        jitter: Fraction in [0, 0.1) added to the delay; random when omitted

    Returns:
        Seconds to wait before the next attempt
    """
    if jitter is None:
        jitter = random.random() * BACKOFF_JITTER
    exponential = base_delay * 2 ** (max(attempt, 1) - 1)
    return min(exponential * (1 + jitter), max_delay)


class BackoffWait:
    """Tenacity wait strategy: Retry-After for rate limits, exponential otherwise."""

    def __init__(self, config: RetryConfig) -> None:
        self.config = config

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        context = classify_error(exc)
        if context.error_type is ErrorType.RATE_LIMIT and context.retry_after:
            return context.retry_after
        return calculate_backoff_delay(
            retry_state.attempt_number, self.config.base_delay, self.config.max_delay
        )


RetryCallback = Callable[[RetryContext, int, float], None]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    description: str = "request",
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run one remote call, retrying retryable failures with backoff.

    Non-retryable failures propagate immediately. When attempts run out the
    last error is re-raised unchanged, so callers can classify it again.

    Args:
        operation: Zero-argument coroutine factory performing the call
        config: Retry limits and delays (defaults to RetryConfig())
        description: Name used in log messages
        on_retry: Called with (context, failed attempt number, delay) before each wait
        sleep: Awaitable sleep function, injectable for tests

    Returns:
        The operation's result
    """
    cfg = config or RetryConfig()
    max_attempts = cfg.max_retries + 1

    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        context = classify_error(exc)
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{max_attempts} failed: {context.error_type.value}",
            operation=description,
            error=str(exc),
            retry_in=round(delay, 2),
        )
        if on_retry:
            on_retry(context, retry_state.attempt_number, delay)

    async def attempt() -> T:
        return await operation()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        retry=retry_if_exception(is_retryable),
        wait=BackoffWait(cfg),
        sleep=sleep,
        before_sleep=before_sleep,
        reraise=True,
    )

    try:
        return await retrying(attempt)
    except Exception as e:
        context = classify_error(e)
        if context.retryable:
            logger.error(f"Max retries ({cfg.max_retries}) exceeded", operation=description)
        else:
            logger.error(f"Non-retryable error: {context.error_type.value}", operation=description)
        raise
