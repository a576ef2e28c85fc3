"""Unit tests for the retry policy and retry loop."""

import asyncio

import pytest

from digest_ingest.errors import FetchError, FetchErrorKind, ParseError
from digest_ingest.ingestion.retry import RetryPolicy, retry_with_backoff, should_retry_fetch


class FlakyOperation:
    """Fails with the queued errors, then returns the result."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def transient(status=500):
    return FetchError(FetchErrorKind.TRANSIENT, f"HTTP {status}", url="https://example.com", status=status)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        """Should default to 4 attempts, 1s initial, 30s max, factor 2, 60s budget."""
        policy = RetryPolicy()
        assert policy.max_attempts == 4
        assert policy.initial_backoff == 1.0
        assert policy.max_backoff == 30.0
        assert policy.backoff_multiplier == 2.0
        assert policy.max_total_elapsed == 60.0

    def test_backoff_grows_and_caps(self):
        """Should grow exponentially and cap at max_backoff."""
        policy = RetryPolicy(initial_backoff=1, max_backoff=5, backoff_multiplier=2)
        assert [policy.backoff(n) for n in range(1, 6)] == [1, 2, 4, 5, 5]

    def test_backoff_overflow_caps(self):
        """Huge attempt numbers should not overflow."""
        policy = RetryPolicy(initial_backoff=1, max_backoff=30, backoff_multiplier=10)
        assert policy.backoff(10_000) == 30

    def test_max_below_initial_rejected(self):
        """Should reject max_backoff smaller than initial_backoff."""
        with pytest.raises(ValueError):
            RetryPolicy(initial_backoff=10, max_backoff=1)

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_shrinking_multiplier_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(backoff_multiplier=0.5)

    def test_should_retry_fetch(self):
        """Only rate-limited and transient fetch errors are retryable."""
        assert should_retry_fetch(transient())
        assert should_retry_fetch(FetchError(FetchErrorKind.RATE_LIMITED, "slow down"))
        assert not should_retry_fetch(FetchError(FetchErrorKind.FATAL, "HTTP 404"))
        assert not should_retry_fetch(ParseError("bad"))


@pytest.mark.asyncio
class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    async def test_success_first_try(self, sleeps):
        """Should return immediately without sleeping."""
        op = FlakyOperation([])
        result = await retry_with_backoff(op, RetryPolicy(), should_retry_fetch, sleep=sleeps)
        assert result == "ok"
        assert op.calls == 1
        assert sleeps.calls == []

    async def test_recovers_after_transient_failures(self, sleeps):
        """Should retry transient failures with growing delays."""
        op = FlakyOperation([transient(), transient(503)])
        result = await retry_with_backoff(op, RetryPolicy(), should_retry_fetch, sleep=sleeps)
        assert result == "ok"
        assert op.calls == 3
        assert sleeps.calls == [1.0, 2.0]

    async def test_exhausts_attempts(self, sleeps):
        """Constant 500s with 3 attempts should surface a transient error after 3 attempts."""
        policy = RetryPolicy(max_attempts=3)
        op = FlakyOperation([transient() for _ in range(10)])

        with pytest.raises(FetchError) as exc_info:
            await retry_with_backoff(op, policy, should_retry_fetch, sleep=sleeps)

        assert exc_info.value.kind == FetchErrorKind.TRANSIENT
        assert exc_info.value.attempts == 3
        assert op.calls == 3
        assert sleeps.calls == [1.0, 2.0]

    async def test_fatal_not_retried(self, sleeps):
        """A fatal error should surface after a single attempt."""
        op = FlakyOperation([FetchError(FetchErrorKind.FATAL, "HTTP 404", status=404)])

        with pytest.raises(FetchError) as exc_info:
            await retry_with_backoff(op, RetryPolicy(), should_retry_fetch, sleep=sleeps)

        assert exc_info.value.kind == FetchErrorKind.FATAL
        assert exc_info.value.attempts == 1
        assert op.calls == 1
        assert sleeps.calls == []

    async def test_non_fetch_errors_propagate_unchanged(self, sleeps):
        """Errors the predicate rejects should propagate as-is."""
        op = FlakyOperation([ParseError("broken payload")])

        with pytest.raises(ParseError):
            await retry_with_backoff(op, RetryPolicy(), should_retry_fetch, sleep=sleeps)
        assert op.calls == 1

    async def test_retry_after_overrides_backoff(self, sleeps):
        """A retry-after hint should replace the computed delay."""
        limited = FetchError(FetchErrorKind.RATE_LIMITED, "rate limited", status=429, retry_after=7)
        op = FlakyOperation([limited])

        result = await retry_with_backoff(op, RetryPolicy(), should_retry_fetch, sleep=sleeps)

        assert result == "ok"
        assert sleeps.calls == [7.0]

    async def test_stops_before_crossing_budget(self, sleeps):
        """Should not schedule a sleep that would cross the total budget."""
        policy = RetryPolicy(max_attempts=10, initial_backoff=1, max_backoff=30, max_total_elapsed=20)
        limited = FetchError(FetchErrorKind.RATE_LIMITED, "rate limited", status=429, retry_after=25)
        op = FlakyOperation([limited, limited])

        with pytest.raises(FetchError) as exc_info:
            await retry_with_backoff(op, policy, should_retry_fetch, sleep=sleeps)

        assert exc_info.value.kind == FetchErrorKind.RATE_LIMITED
        assert exc_info.value.attempts == 1
        assert sleeps.calls == []

    async def test_attempt_cut_off_by_budget(self, sleeps):
        """A hanging attempt should be cut off at the total budget."""
        policy = RetryPolicy(max_attempts=2, initial_backoff=0.01, max_backoff=0.01, max_total_elapsed=0.05)

        async def hang():
            await asyncio.sleep(10)

        with pytest.raises(FetchError) as exc_info:
            await retry_with_backoff(hang, policy, should_retry_fetch, sleep=sleeps)

        assert exc_info.value.kind == FetchErrorKind.TRANSIENT

    async def test_sleep_is_cancellable(self):
        """Cancelling the caller should abort a pending backoff sleep."""
        op = FlakyOperation([transient() for _ in range(10)])
        policy = RetryPolicy(initial_backoff=30, max_backoff=30, max_total_elapsed=None)

        task = asyncio.ensure_future(retry_with_backoff(op, policy, should_retry_fetch))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert op.calls == 1
