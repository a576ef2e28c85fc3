"""HTTP fetcher with exponential-backoff retries and rate-limit detection."""

import asyncio
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Mapping, Optional

import aiohttp
import structlog

from ..errors import FetchError, FetchErrorKind
from .retry import RetryPolicy, retry_with_backoff, should_retry_fetch

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "digest-ingest-fetcher/1.0"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(int(value))
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def classify_status(status: int, headers: Mapping[str, str], url: str = "") -> Optional[FetchError]:
    """Map an HTTP status to a FetchError, or None for success."""
    if status < 400:
        return None

    retry_after = parse_retry_after(headers.get("Retry-After"))
    if status == 429 or retry_after is not None:
        return FetchError(
            FetchErrorKind.RATE_LIMITED,
            f"rate limited (HTTP {status})",
            url=url,
            status=status,
            retry_after=retry_after,
        )
    if status >= 500 or status == 408:
        return FetchError(FetchErrorKind.TRANSIENT, f"HTTP {status}", url=url, status=status)
    return FetchError(FetchErrorKind.FATAL, f"HTTP {status}", url=url, status=status)


def classify_exception(error: Exception, url: str = "") -> FetchError:
    """Map a client-side failure to a FetchError."""
    if isinstance(error, aiohttp.InvalidURL):
        return FetchError(FetchErrorKind.FATAL, f"invalid URL: {error}", url=url)
    if isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError)):
        return FetchError(FetchErrorKind.TRANSIENT, f"connection failed: {error!r}", url=url)
    if isinstance(error, aiohttp.ClientError):
        return FetchError(FetchErrorKind.TRANSIENT, f"client error: {error!r}", url=url)
    return FetchError(FetchErrorKind.FATAL, f"request failed: {error!r}", url=url)


class ResilientFetcher:
    """Async HTTP GET with retries, sharing one aiohttp session."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        policy: Optional[RetryPolicy] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.policy = policy or RetryPolicy()
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._owns_session = session is None

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"User-Agent": self.user_agent},
            )
            self._owns_session = True
        return self

    async def __aexit__(self, *args):
        if self._owns_session and self.session:
            await self.session.close()
            self.session = None

    async def fetch(self, url: str) -> bytes:
        """Fetch a URL, retrying rate-limited and transient failures."""
        if self.session is None:
            raise RuntimeError("ResilientFetcher used outside of its session context")

        start_time = time.time()
        try:
            body = await retry_with_backoff(
                lambda: self._attempt(url),
                self.policy,
                should_retry_fetch,
                sleep=self._sleep,
                describe=f"GET {url}",
            )
        except FetchError as e:
            logger.error(
                "fetch_failed",
                url=url,
                kind=e.kind.value,
                status=e.status,
                attempts=e.attempts,
                error=e.message,
            )
            raise

        logger.debug(
            "fetch_complete",
            url=url,
            bytes=len(body),
            time_ms=int((time.time() - start_time) * 1000),
        )
        return body

    async def _attempt(self, url: str) -> bytes:
        try:
            async with self.session.get(url, headers={"User-Agent": self.user_agent}) as response:
                error = classify_status(response.status, response.headers, url)
                if error is not None:
                    raise error
                return await response.read()
        except FetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise classify_exception(e, url) from e
