"""Exponential backoff retry for async network operations."""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception, stop_after_attempt
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from ..errors import FetchError, FetchErrorKind

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule for a fallible operation. Durations are in seconds."""
    max_attempts: int = 4
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    backoff_multiplier: float = 2.0
    max_total_elapsed: Optional[float] = 60.0  # None means unbounded

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_backoff < 0:
            raise ValueError("initial_backoff cannot be negative")
        if self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff must be >= initial_backoff")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if self.max_total_elapsed is not None and self.max_total_elapsed <= 0:
            raise ValueError("max_total_elapsed must be positive")

    def backoff(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        try:
            delay = self.initial_backoff * self.backoff_multiplier ** (attempt - 1)
        except OverflowError:
            return self.max_backoff
        return min(delay, self.max_backoff)


class wait_policy_backoff(wait_base):
    """Policy backoff, overridden by an upstream retry-after hint."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            retry_after = getattr(outcome.exception(), "retry_after", None)
            if retry_after is not None:
                return max(0.0, float(retry_after))
        return self.policy.backoff(retry_state.attempt_number)


class stop_before_budget(stop_base):
    """Stop when the next sleep would cross the total elapsed budget."""

    def __init__(self, policy: RetryPolicy, wait: wait_base):
        self.policy = policy
        self.wait = wait

    def __call__(self, retry_state: RetryCallState) -> bool:
        if self.policy.max_total_elapsed is None:
            return False
        elapsed = retry_state.seconds_since_start or 0.0
        return elapsed + self.wait(retry_state) >= self.policy.max_total_elapsed


def _log_retry(describe: str):
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retry_scheduled",
            operation=describe,
            attempt=retry_state.attempt_number,
            delay_s=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(error),
        )
    return before_sleep


async def _bounded(operation: Callable[[], Awaitable[T]], policy: RetryPolicy, started: float) -> T:
    """Run one attempt, cut off at whatever remains of the total budget."""
    if policy.max_total_elapsed is None:
        return await operation()
    remaining = policy.max_total_elapsed - (time.monotonic() - started)
    if remaining <= 0:
        raise FetchError(FetchErrorKind.TRANSIENT, "retry budget exhausted before attempt")
    try:
        return await asyncio.wait_for(operation(), timeout=remaining)
    except asyncio.TimeoutError:
        raise FetchError(
            FetchErrorKind.TRANSIENT,
            f"attempt cut off by total retry budget of {policy.max_total_elapsed}s",
        )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    describe: str = "",
) -> T:
    """Run an async operation, retrying failures that should_retry accepts.

    Retries stop when policy.max_attempts is reached, when the next sleep would
    cross policy.max_total_elapsed, or on the first error should_retry rejects.
    The last error is raised; FetchErrors carry the number of attempts made.
    Sleeps go through `sleep`, so cancelling the calling task aborts them.
    """
    wait = wait_policy_backoff(policy)
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts) | stop_before_budget(policy, wait),
        wait=wait,
        retry=retry_if_exception(should_retry),
        sleep=sleep,
        before_sleep=_log_retry(describe),
        reraise=False,
    )
    started = time.monotonic()
    attempts = 0

    try:
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                return await _bounded(operation, policy, started)
    except RetryError as exc:
        error = exc.last_attempt.exception()
        if isinstance(error, FetchError):
            raise error.with_attempts(attempts) from error
        raise error
    except FetchError as exc:
        raise exc.with_attempts(attempts) from exc


def should_retry_fetch(error: BaseException) -> bool:
    """Retry rate-limited and transient fetch failures only."""
    return isinstance(error, FetchError) and error.retryable
