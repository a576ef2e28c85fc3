"""Atom/RSS syndication provider."""

from datetime import datetime, timezone
from typing import Optional

import feedparser
import structlog

from ..errors import ParseError
from ..enrichment.rules import is_http_url
from ..ingestion.fetcher import ResilientFetcher
from ..ingestion.interfaces import Comment, CommentThread, Entry, Feed, FeedProvider

logger = structlog.get_logger()


def _parse_document(payload: bytes, source: str):
    parsed = feedparser.parse(payload, sanitize_html=False, resolve_relative_uris=False)
    if parsed.bozo and not isinstance(parsed.get("bozo_exception"), feedparser.CharacterEncodingOverride):
        raise ParseError(f"malformed feed document: {parsed.get('bozo_exception')}", source=source)
    return parsed


def _content_of(item) -> str:
    """Markup body of a feed item, as received."""
    if item.get("content"):
        return item.content[0].get("value", "")
    return item.get("summary", "")


def _published_at(item, source: str) -> datetime:
    """Published (or updated) timestamp; unparseable dates fail the feed."""
    for attr in ("published", "updated"):
        raw = item.get(attr)
        if not raw:
            continue
        parsed = item.get(f"{attr}_parsed")
        if not parsed:
            raise ParseError(f"unparseable {attr} date {raw!r} on item {item.get('id', '?')}", source=source)
        try:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
        except (TypeError, ValueError) as e:
            raise ParseError(f"invalid {attr} date {raw!r}: {e}", source=source) from e
    raise ParseError(f"item {item.get('id', '?')} has no published date", source=source)


def _thumbnail_of(item) -> Optional[str]:
    for thumb in item.get("media_thumbnail") or []:
        url = thumb.get("url", "")
        if is_http_url(url):
            return url
    return None


def parse_feed(payload: bytes, source: str = "") -> Feed:
    """Parse a syndication document into a Feed."""
    parsed = _parse_document(payload, source)

    entries = []
    for item in parsed.entries:
        entry_id = item.get("id") or item.get("link")
        if not entry_id:
            raise ParseError("feed item without id or link", source=source)
        entries.append(Entry(
            id=entry_id,
            title=item.get("title", ""),
            raw_content=_content_of(item),
            published_at=_published_at(item, source),
            permalink=item.get("link", ""),
            thumbnail_url=_thumbnail_of(item),
        ))

    return Feed(entries=entries, source=source, format="rss", raw_payload=payload)


def parse_comment_thread(payload: bytes, source: str = "") -> CommentThread:
    """Parse a comment feed; its first element is the root post."""
    parsed = _parse_document(payload, source)
    comments = [
        Comment(body=_content_of(item), id=item.get("id"))
        for item in parsed.entries
    ]
    return CommentThread(comments=comments, root_included=True, raw_payload=payload)


class SyndicationProvider(FeedProvider):
    """Feed and comment threads fetched over HTTP as Atom/RSS."""

    format = "rss"

    def __init__(self, fetcher: ResilientFetcher):
        self.fetcher = fetcher

    async def fetch_feed(self, locator: str) -> Feed:
        payload = await self.fetcher.fetch(locator)
        feed = parse_feed(payload, source=locator)
        logger.info("feed_fetched", provider=self.format, url=locator, entries=len(feed.entries))
        return feed

    async def fetch_comments(self, entry: Entry) -> CommentThread:
        url = entry.comment_thread_url()
        payload = await self.fetcher.fetch(url)
        thread = parse_comment_thread(payload, source=url)
        logger.debug("comments_fetched", provider=self.format, entry_id=entry.id, comments=len(thread.comments))
        return thread
