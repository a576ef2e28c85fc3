"""Error taxonomy for the ingestion pipeline."""

from enum import Enum
from typing import Optional


class DigestIngestError(Exception):
    """Base class for all pipeline errors."""


class FetchErrorKind(Enum):
    """How a failed fetch should be treated by the retry loop."""
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"


class FetchError(DigestIngestError):
    """A network fetch failed."""

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str,
        url: str = "",
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
        attempts: int = 1,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.url = url
        self.status = status
        self.retry_after = retry_after
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind in (FetchErrorKind.RATE_LIMITED, FetchErrorKind.TRANSIENT)

    def with_attempts(self, attempts: int) -> "FetchError":
        """Copy of this error annotated with the number of attempts made."""
        return FetchError(
            kind=self.kind,
            message=self.message,
            url=self.url,
            status=self.status,
            retry_after=self.retry_after,
            attempts=attempts,
        )

    def __str__(self) -> str:
        text = f"{self.kind.value}: {self.message}"
        if self.url:
            text += f" ({self.url})"
        if self.attempts > 1:
            text += f" after {self.attempts} attempts"
        return text


class ParseError(DigestIngestError):
    """An upstream payload could not be parsed. Never retried."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} [{self.source}]" if self.source else base


class InvalidLocatorError(DigestIngestError):
    """A locator could not be mapped to a source-specific resource."""


class EnrichmentError(DigestIngestError):
    """Enrichment of a single entry failed; the whole batch fails with it."""

    def __init__(self, entry_id: str, cause: BaseException):
        super().__init__(f"enrichment failed for entry {entry_id}: {cause}")
        self.entry_id = entry_id
        self.cause = cause


class EnrichmentDeadlineExceeded(DigestIngestError):
    """The enrichment pass did not finish before its deadline."""

    def __init__(self, deadline: float, pending: int = 0):
        super().__init__(
            f"enrichment deadline of {deadline:.1f}s exceeded with {pending} entries pending"
        )
        self.deadline = deadline
        self.pending = pending
