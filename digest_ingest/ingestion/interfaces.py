"""Interface definitions for data ingestion."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Set


@dataclass
class SourceConfig:
    """Configuration for a single persona's source."""
    name: str
    url: str = ""
    provider: str = "reddit"  # "reddit" or "rss"
    comment_threshold: Optional[int] = None  # falls back to the global default
    enabled: bool = True

    def threshold(self, default: int) -> int:
        """Effective comment threshold for this source."""
        if self.comment_threshold is not None:
            return self.comment_threshold
        return default


@dataclass
class Comment:
    """One reply in a comment thread."""
    body: str
    id: Optional[str] = None
    parent_id: Optional[str] = None  # only set where the source exposes parentage


@dataclass
class Entry:
    """One syndicated post."""
    id: str
    title: str = ""
    raw_content: str = ""
    published_at: Optional[datetime] = None
    permalink: str = ""
    comments: List[Comment] = field(default_factory=list)
    image_urls: Set[str] = field(default_factory=set)
    external_urls: Set[str] = field(default_factory=set)
    thumbnail_url: Optional[str] = None

    def comment_thread_url(self) -> str:
        """Address of the first-level comment thread for this entry."""
        return f"{self.permalink}.rss?depth=1"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "raw_content": self.raw_content,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "permalink": self.permalink,
            "comments": [c.body for c in self.comments],
            "image_urls": sorted(self.image_urls),
            "external_urls": sorted(self.external_urls),
            "thumbnail_url": self.thumbnail_url,
        }


@dataclass
class Feed:
    """Entries returned by a provider for one locator, in source order."""
    entries: List[Entry] = field(default_factory=list)
    source: str = ""
    format: str = "rss"  # "rss" or "reddit", matches the fixture layout
    raw_payload: bytes = b""


@dataclass
class CommentThread:
    """Replies fetched for one entry."""
    comments: List[Comment] = field(default_factory=list)
    root_included: bool = False  # source returns the root post as the first element
    raw_payload: bytes = b""


class FeedProvider:
    """Interface for a source of entries and their comment threads."""

    format: str = "rss"

    async def fetch_feed(self, locator: str) -> Feed:
        """Fetch the entries for a locator."""
        raise NotImplementedError

    async def fetch_comments(self, entry: Entry) -> CommentThread:
        """Fetch the comment thread for an entry."""
        raise NotImplementedError
