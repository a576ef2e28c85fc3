"""Application settings with environment variable support."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional
from pathlib import Path

from ..ingestion.retry import RetryPolicy


# Compute base_dir at module level
_BASE_DIR = Path(__file__).parent.parent.parent.resolve()


class Settings(BaseSettings):
    """Pipeline settings. Construct once per process and pass it down."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DI_",  # DI_QUALITY_FILTER_THRESHOLD, DI_REDDIT_CLIENT_ID, etc.
    )

    # Paths
    base_dir: Path = _BASE_DIR
    fixtures_dir: Path = _BASE_DIR / "feed_mocks"

    # Fetching
    fetch_timeout_seconds: float = 30
    user_agent: str = "digest-ingest/1.0"

    # Retry policy for network calls
    retry_max_attempts: int = 4
    retry_initial_backoff_seconds: float = 1.0
    retry_max_backoff_seconds: float = 30.0
    retry_backoff_multiplier: float = 2.0
    retry_max_total_elapsed_seconds: Optional[float] = 60.0

    # Enrichment
    max_concurrent_comment_fetches: int = 5
    enrichment_deadline_seconds: Optional[float] = 300.0

    # Quality filter
    quality_filter_threshold: int = 10

    # Reddit API
    reddit_client_id: Optional[str] = None
    reddit_client_secret: Optional[str] = None
    reddit_username: Optional[str] = None
    reddit_password: Optional[str] = None

    # Debug / offline runs
    use_fixtures: bool = False
    dump_fixtures: bool = False
    max_entries: int = 0  # 0 keeps every entry

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        if self.retry_max_backoff_seconds < self.retry_initial_backoff_seconds:
            raise ValueError("retry_max_backoff_seconds must be >= retry_initial_backoff_seconds")
        if self.max_concurrent_comment_fetches < 1:
            raise ValueError("max_concurrent_comment_fetches must be at least 1")
        if self.max_entries < 0:
            raise ValueError("max_entries cannot be negative")
        return self

    def retry_policy(self) -> RetryPolicy:
        """Retry policy built from the retry_* settings."""
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_backoff=self.retry_initial_backoff_seconds,
            max_backoff=self.retry_max_backoff_seconds,
            backoff_multiplier=self.retry_backoff_multiplier,
            max_total_elapsed=self.retry_max_total_elapsed_seconds,
        )

    def has_reddit_credentials(self) -> bool:
        return all([
            self.reddit_client_id,
            self.reddit_client_secret,
            self.reddit_username,
            self.reddit_password,
        ])
