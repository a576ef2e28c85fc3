"""Data ingestion - entry model, retries and resilient HTTP fetching."""

from .interfaces import SourceConfig, Comment, Entry, Feed, CommentThread, FeedProvider
from .retry import RetryPolicy, retry_with_backoff, should_retry_fetch
from .fetcher import ResilientFetcher, classify_status, parse_retry_after

__all__ = [
    "SourceConfig", "Comment", "Entry", "Feed", "CommentThread", "FeedProvider",
    "RetryPolicy", "retry_with_backoff", "should_retry_fetch",
    "ResilientFetcher", "classify_status", "parse_retry_after",
]
