"""Unit tests for error classification and retry with backoff."""

import asyncio
import errno
import socket
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.redirect_sync.config import RetryConfig
from src.redirect_sync.execution.retry import (
    ErrorType,
    calculate_backoff_delay,
    classify_error,
    describe_filesystem_error,
    parse_retry_after,
    retry_with_backoff,
)
from src.redirect_sync.utils.exceptions import (
    CSVReadError,
    GraphQLError,
    PageFetchTimeout,
    RateLimitError,
    RecordViolation,
    RedirectValidationError,
    RemoteAPIError,
    RemoteNetworkError,
)


class TestClassifyError:
    """Test mapping of errors to retry decisions."""

    def test_rate_limit_with_retry_after(self):
        """429 is retryable and carries the server-dictated delay."""
        context = classify_error(RateLimitError("slow down", headers={"Retry-After": "5"}))

        assert context.error_type is ErrorType.RATE_LIMIT
        assert context.retryable is True
        assert context.retry_after == 5.0

    def test_rate_limit_without_retry_after(self):
        """429 without a header still retries, with exponential backoff."""
        context = classify_error(RateLimitError("slow down"))

        assert context.error_type is ErrorType.RATE_LIMIT
        assert context.retry_after is None

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_server_errors_retryable(self, status):
        """5xx responses are retried."""
        context = classify_error(RemoteAPIError("boom", status_code=status))
        assert context.error_type is ErrorType.SERVER_ERROR
        assert context.retryable is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_fatal(self, status):
        """4xx other than 429 fail the run."""
        context = classify_error(RemoteAPIError("bad", status_code=status))
        assert context.error_type is ErrorType.CLIENT_ERROR
        assert context.retryable is False

    @pytest.mark.parametrize(
        "error",
        [
            RemoteNetworkError("reset"),
            PageFetchTimeout("c1", 60.0),
            asyncio.TimeoutError(),
            ConnectionResetError(),
            socket.gaierror(socket.EAI_NONAME, "Name or service not known"),
            httpx.ConnectError("refused"),
        ],
    )
    def test_network_errors_retryable(self, error):
        """Resets, timeouts and DNS failures are retried."""
        context = classify_error(error)
        assert context.error_type is ErrorType.NETWORK_ERROR
        assert context.retryable is True

    def test_http_status_error(self):
        """httpx status errors are classified by their response status."""
        request = httpx.Request("POST", "https://example.com")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("unavailable", request=request, response=response)

        assert classify_error(error).error_type is ErrorType.SERVER_ERROR

    def test_disk_full_never_retried(self):
        """Filesystem errors are fatal."""
        context = classify_error(OSError(errno.ENOSPC, "No space left on device"))
        assert context.error_type is ErrorType.FILESYSTEM_ERROR
        assert context.retryable is False

    def test_validation_errors_fatal(self):
        """Unreadable or invalid input is fatal."""
        violation = RecordViolation(0, "to", "Field required", {"from": "/a"})
        assert classify_error(CSVReadError("in.csv", "bad")).error_type is ErrorType.VALIDATION_ERROR
        assert (
            classify_error(RedirectValidationError([violation])).error_type
            is ErrorType.VALIDATION_ERROR
        )

    def test_graphql_error_without_status_is_unknown(self):
        """GraphQL errors in a 200 response are not retried."""
        context = classify_error(GraphQLError([{"message": "Cannot query field"}]))
        assert context.error_type is ErrorType.UNKNOWN
        assert context.retryable is False

    def test_unknown_errors_fatal(self):
        """Anything unrecognised fails safe."""
        assert classify_error(ValueError("bug")).retryable is False
        assert classify_error(None).error_type is ErrorType.UNKNOWN


class TestParseRetryAfter:
    """Test Retry-After header parsing."""

    def test_seconds(self):
        assert parse_retry_after("5") == 5.0
        assert parse_retry_after(" 120 ") == 120.0

    def test_http_date(self):
        """HTTP-dates are converted to a delay relative to now."""
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=30), usegmt=True)

        assert parse_retry_after(header, now=now) == pytest.approx(30.0)

    def test_http_date_in_past(self):
        """Dates already passed mean no wait."""
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(minutes=5), usegmt=True)

        assert parse_retry_after(header, now=now) == 0.0

    @pytest.mark.parametrize("value", [None, "", "soon", "-"])
    def test_unparseable(self, value):
        assert parse_retry_after(value) is None

    def test_negative_seconds_clamped(self):
        assert parse_retry_after("-3") == 0.0


class TestCalculateBackoffDelay:
    """Test exponential backoff."""

    def test_first_attempt_uses_base_delay(self):
        assert calculate_backoff_delay(1, 1.0, 30.0, jitter=0.0) == 1.0

    def test_doubles_per_attempt(self):
        assert calculate_backoff_delay(2, 1.0, 30.0, jitter=0.0) == 2.0
        assert calculate_backoff_delay(4, 1.0, 30.0, jitter=0.0) == 8.0

    def test_jitter_added(self):
        assert calculate_backoff_delay(3, 1.0, 30.0, jitter=0.05) == pytest.approx(4.2)

    def test_capped(self):
        assert calculate_backoff_delay(10, 1.0, 30.0, jitter=0.09) == 30.0

    def test_random_jitter_bounds(self):
        """Random jitter stays below 10%."""
        for _ in range(50):
            delay = calculate_backoff_delay(2, 1.0, 30.0)
            assert 2.0 <= delay < 2.2

    @pytest.mark.parametrize("attempt", range(1, 15))
    def test_non_decreasing_up_to_cap(self, attempt):
        """Each attempt waits at least as long as the one before, never past max_delay."""
        current = calculate_backoff_delay(attempt, 1.0, 30.0, jitter=0.0)
        following = calculate_backoff_delay(attempt + 1, 1.0, 30.0, jitter=0.0)

        assert following >= current
        assert following <= 30.0

    @pytest.mark.parametrize("attempt", range(1, 15))
    def test_random_jitter_within_bounds(self, attempt):
        floor = min(2 ** (attempt - 1), 30.0)
        for _ in range(20):
            delay = calculate_backoff_delay(attempt, 1.0, 30.0)
            assert floor <= delay <= 30.0
            assert delay <= floor * 1.1


class TestDescribeFilesystemError:
    """Test operator-facing filesystem messages."""

    def test_known_errno(self):
        message = describe_filesystem_error(OSError(errno.ENOSPC, "No space left on device"))
        assert "No space left on device" in message

    def test_permission_denied(self):
        message = describe_filesystem_error(PermissionError(errno.EACCES, "Permission denied"))
        assert "Permission denied" in message

    def test_message_fallback(self):
        message = describe_filesystem_error(OSError("could not write chunk"))
        assert "Failed to write to file" in message

    def test_generic(self):
        assert describe_filesystem_error(OSError("odd")) == "File system error: odd"
        assert describe_filesystem_error(None) == "Unknown file system error"


class TestRetryWithBackoff:
    """Test the retry wrapper around remote calls."""

    @pytest.fixture(autouse=True)
    def setup_method(self):
        """Set up test fixtures."""
        self.config = RetryConfig(max_retries=3, base_delay=1.0, max_delay=30.0)
        self.sleep = AsyncMock()

    @pytest.mark.asyncio
    async def test_success_without_retry(self):
        operation = AsyncMock(return_value="ok")

        result = await retry_with_backoff(operation, self.config, sleep=self.sleep)

        assert result == "ok"
        operation.assert_awaited_once()
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        """Network errors are retried until the call succeeds."""
        operation = AsyncMock(
            side_effect=[RemoteNetworkError("reset"), RemoteNetworkError("reset"), "ok"]
        )

        result = await retry_with_backoff(operation, self.config, sleep=self.sleep)

        assert result == "ok"
        assert operation.await_count == 3
        assert self.sleep.await_count == 2
        first_delay = self.sleep.await_args_list[0].args[0]
        second_delay = self.sleep.await_args_list[1].args[0]
        assert 1.0 <= first_delay < 1.1
        assert 2.0 <= second_delay < 2.2

    @pytest.mark.asyncio
    async def test_rate_limit_waits_retry_after(self):
        """A 429 with Retry-After: 5 waits exactly 5 seconds."""
        operation = AsyncMock(
            side_effect=[RateLimitError("slow down", headers={"Retry-After": "5"}), "ok"]
        )

        result = await retry_with_backoff(operation, self.config, sleep=self.sleep)

        assert result == "ok"
        self.sleep.assert_awaited_once()
        assert self.sleep.await_args.args[0] == 5.0

    @pytest.mark.asyncio
    async def test_fatal_error_not_retried(self):
        """Client errors propagate after a single attempt."""
        operation = AsyncMock(side_effect=RemoteAPIError("bad request", status_code=400))

        with pytest.raises(RemoteAPIError, match="bad request"):
            await retry_with_backoff(operation, self.config, sleep=self.sleep)

        operation.assert_awaited_once()
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disk_full_not_retried(self):
        operation = AsyncMock(side_effect=OSError(errno.ENOSPC, "No space left on device"))

        with pytest.raises(OSError):
            await retry_with_backoff(operation, self.config, sleep=self.sleep)

        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exhausted_reraises_last_error(self):
        """After max_retries + 1 attempts the original error propagates."""
        errors = [RemoteAPIError(f"down {i}", status_code=503) for i in range(4)]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(RemoteAPIError) as exc_info:
            await retry_with_backoff(operation, self.config, sleep=self.sleep)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 4
        assert self.sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_on_retry_callback(self):
        """The callback sees the classification, attempt number and delay."""
        on_retry = MagicMock()
        operation = AsyncMock(side_effect=[RemoteAPIError("down", status_code=502), "ok"])

        await retry_with_backoff(operation, self.config, sleep=self.sleep, on_retry=on_retry)

        on_retry.assert_called_once()
        context, attempt, delay = on_retry.call_args.args
        assert context.error_type is ErrorType.SERVER_ERROR
        assert attempt == 1
        assert delay >= 1.0

    @pytest.mark.asyncio
    async def test_attempt_counts_are_per_call(self):
        """Two independent calls each get the full retry budget."""
        first = AsyncMock(side_effect=[RemoteNetworkError("x")] * 3 + ["a"])
        second = AsyncMock(side_effect=[RemoteNetworkError("x")] * 3 + ["b"])

        assert await retry_with_backoff(first, self.config, sleep=self.sleep) == "a"
        assert await retry_with_backoff(second, self.config, sleep=self.sleep) == "b"

    @pytest.mark.asyncio
    async def test_lambda_wrapped_call_is_awaited(self):
        """A plain lambda returning a coroutine is awaited, not handed back."""
        call = AsyncMock(return_value=42)

        result = await retry_with_backoff(lambda: call(), self.config, sleep=self.sleep)

        assert result == 42
        call.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lambda_wrapped_call_retried(self):
        call = AsyncMock(side_effect=[RemoteNetworkError("reset"), 7])

        result = await retry_with_backoff(lambda: call(), self.config, sleep=self.sleep)

        assert result == 7
        assert call.await_count == 2

    @pytest.mark.asyncio
    async def test_lambda_wrapped_fatal_error_propagates(self):
        call = AsyncMock(side_effect=RemoteAPIError("bad request", status_code=400))

        with pytest.raises(RemoteAPIError, match="bad request"):
            await retry_with_backoff(lambda: call(), self.config, sleep=self.sleep)

        call.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "retry_after",
        ["0", format_datetime(datetime.now(timezone.utc) - timedelta(minutes=5), usegmt=True)],
    )
    async def test_zero_retry_after_uses_backoff(self, retry_after):
        """Retry-After of zero or a past date falls back to exponential backoff."""
        operation = AsyncMock(
            side_effect=[RateLimitError("slow down", headers={"Retry-After": retry_after}), "ok"]
        )

        result = await retry_with_backoff(operation, self.config, sleep=self.sleep)

        assert result == "ok"
        self.sleep.assert_awaited_once()
        assert 1.0 <= self.sleep.await_args.args[0] < 1.1
