"""Reddit API provider: hot listings and comment threads through praw."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import praw
from praw.exceptions import PRAWException
from prawcore.exceptions import (
    OAuthException,
    PrawcoreException,
    Redirect,
    RequestException,
    ResponseException,
    TooManyRequests,
)
import structlog

from ..errors import FetchError, FetchErrorKind, InvalidLocatorError, ParseError
from ..enrichment.rules import is_http_url, normalize_url
from ..ingestion.fetcher import DEFAULT_USER_AGENT, classify_status, parse_retry_after
from ..ingestion.interfaces import Comment, CommentThread, Entry, Feed, FeedProvider
from ..ingestion.retry import RetryPolicy, retry_with_backoff, should_retry_fetch
from .threads import POST_PREFIX

logger = structlog.get_logger()

REDDIT_WEB_BASE = "https://www.reddit.com"

HOT_POSTS_LIMIT = 25  # same page size as the subreddit RSS feed

VENDOR_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg")
VENDOR_IMAGE_HOSTS = ("i.imgur.com", "i.redd.it", "preview.redd.it", "i.reddit.com", "imgur.com/")


def extract_subreddit(locator: str) -> str:
    """Subreddit name from a feed address like https://www.reddit.com/r/LocalLLaMA/.rss"""
    try:
        path = urlsplit(locator).path
    except ValueError as e:
        raise InvalidLocatorError(f"invalid URL: {locator}") from e

    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) < 2 or parts[0] != "r":
        raise InvalidLocatorError(f"invalid subreddit URL format: {locator}")

    subreddit = parts[1]
    if subreddit.endswith(".rss"):
        subreddit = subreddit[:-len(".rss")]
    if not subreddit:
        raise InvalidLocatorError(f"invalid subreddit URL format: {locator}")
    return subreddit


def is_vendor_image_url(url: str) -> bool:
    """Looser image check used for Reddit post URLs."""
    if not url:
        return False
    lowered = url.lower()
    return (
        any(ext in lowered for ext in VENDOR_IMAGE_EXTENSIONS)
        or any(host in lowered for host in VENDOR_IMAGE_HOSTS)
    )


def _parse_timestamp(value: Any, field_name: str) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ParseError(f"invalid {field_name} timestamp {value!r}: {e}") from e
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"invalid {field_name} timestamp {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ParseError(f"missing {field_name} timestamp")


# Records: the flattened post/comment shape shared by live calls and fixtures

def post_record(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Reddit API post (listing child data) into a post record."""
    return {
        "id": data.get("id", ""),
        "title": data.get("title", ""),
        "body": data.get("selftext", ""),
        "url": data.get("url", ""),
        "permalink": data.get("permalink", ""),
        "created": _parse_timestamp(data.get("created_utc"), "created_utc").isoformat(),
        "score": data.get("score", 0),
        "num_comments": data.get("num_comments", 0),
        "author": data.get("author", ""),
        "is_self": bool(data.get("is_self", False)),
        "nsfw": bool(data.get("over_18", False)),
        "spoiler": bool(data.get("spoiler", False)),
        "thumbnail": data.get("thumbnail", ""),
    }


def comment_record(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Reddit API comment into a comment record."""
    created = data.get("created_utc")
    return {
        "id": data.get("id", ""),
        "body": data.get("body", ""),
        "parent_id": data.get("parent_id", ""),
        "author": data.get("author", ""),
        "score": data.get("score", 0),
        "created": _parse_timestamp(created, "created_utc").isoformat() if created is not None else None,
    }


def map_post(record: Dict[str, Any]) -> Entry:
    """Map a post record to an Entry.

    Self posts keep their body verbatim. Link posts get a synthesized body
    pointing at the target URL, which also seeds external_urls.
    """
    post_id = record.get("id")
    if not post_id:
        raise ParseError("post record without id")

    url = record.get("url") or ""
    is_self = bool(record.get("is_self"))
    entry = Entry(
        id=post_id,
        title=record.get("title", ""),
        published_at=_parse_timestamp(record.get("created"), "created"),
        permalink=REDDIT_WEB_BASE + (record.get("permalink") or ""),
    )

    if is_self:
        entry.raw_content = record.get("body") or ""
    else:
        entry.raw_content = f"Link: {url}"
        if is_http_url(url):
            entry.external_urls = {normalize_url(url)}

    if not is_self and is_http_url(url) and is_vendor_image_url(url):
        entry.image_urls = {normalize_url(url)}

    thumbnail = record.get("thumbnail") or ""
    if is_http_url(thumbnail):
        entry.thumbnail_url = thumbnail
    elif entry.image_urls:
        entry.thumbnail_url = url

    return entry


def map_comments(post_id: str, records: List[Dict[str, Any]], raw_payload: bytes = b"") -> CommentThread:
    """Keep first-level replies: those whose parent is the post itself."""
    parent = POST_PREFIX + post_id
    comments = [
        Comment(body=r.get("body", ""), id=r.get("id"), parent_id=r.get("parent_id"))
        for r in records
        if r.get("parent_id") == parent
    ]
    return CommentThread(comments=comments, root_included=False, raw_payload=raw_payload)


def feed_dump(subreddit: str, records: List[Dict[str, Any]]) -> bytes:
    return json.dumps({
        "subreddit": subreddit,
        "fetched_at": datetime.now(timezone.utc).isoformat(),
        "posts": records,
        "raw_api_url": f"/r/{subreddit}/hot",
    }, indent=2).encode()


def comments_dump(post_id: str, records: List[Dict[str, Any]]) -> bytes:
    return json.dumps({
        "post_id": post_id,
        "fetched_at": datetime.now(timezone.utc).isoformat(),
        "comments": records,
        "raw_api_url": f"/comments/{post_id}",
    }, indent=2).encode()


def _load_json(payload: bytes, source: str) -> Dict[str, Any]:
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError(f"invalid JSON: {e}", source=source) from e
    if not isinstance(data, dict):
        raise ParseError("expected a JSON object", source=source)
    return data


def parse_feed_dump(payload: bytes, source: str = "") -> Feed:
    """Parse a captured feed (see feed_dump) into a Feed."""
    data = _load_json(payload, source)
    posts = data.get("posts")
    if not isinstance(posts, list):
        raise ParseError("feed dump without a posts list", source=source)
    return Feed(
        entries=[map_post(p) for p in posts],
        source=source or f"r/{data.get('subreddit', '')}",
        format="reddit",
        raw_payload=payload,
    )


def parse_comments_dump(payload: bytes, post_id: str, source: str = "") -> CommentThread:
    """Parse captured comments (see comments_dump) for a post."""
    data = _load_json(payload, source)
    comments = data.get("comments")
    if not isinstance(comments, list):
        raise ParseError("comment dump without a comments list", source=source)
    return map_comments(post_id, comments, raw_payload=payload)

def submission_data(submission) -> Dict[str, Any]:
    """Plain dict of the praw Submission attributes a post record needs."""
    author = getattr(submission, "author", None)
    return {
        "id": submission.id,
        "title": submission.title,
        "selftext": getattr(submission, "selftext", ""),
        "url": getattr(submission, "url", ""),
        "permalink": getattr(submission, "permalink", ""),
        "created_utc": getattr(submission, "created_utc", None),
        "score": getattr(submission, "score", 0),
        "num_comments": getattr(submission, "num_comments", 0),
        "author": str(author) if author is not None else "[deleted]",
        "is_self": getattr(submission, "is_self", False),
        "over_18": getattr(submission, "over_18", False),
        "spoiler": getattr(submission, "spoiler", False),
        "thumbnail": getattr(submission, "thumbnail", ""),
    }


def comment_data(comment) -> Dict[str, Any]:
    author = getattr(comment, "author", None)
    return {
        "id": comment.id,
        "body": getattr(comment, "body", ""),
        "parent_id": getattr(comment, "parent_id", ""),
        "author": str(author) if author is not None else "[deleted]",
        "score": getattr(comment, "score", 0),
        "created_utc": getattr(comment, "created_utc", None),
    }


def classify_reddit_error(error: Exception, describe: str = "") -> FetchError:
    """Map a praw/prawcore failure to a FetchError."""
    if isinstance(error, TooManyRequests):
        return FetchError(
            FetchErrorKind.RATE_LIMITED,
            "rate limited (HTTP 429)",
            url=describe,
            status=429,
            retry_after=parse_retry_after(error.retry_after),
        )
    if isinstance(error, Redirect):
        # Reddit answers an unknown subreddit with a redirect to search
        return FetchError(FetchErrorKind.FATAL, f"not found: redirected to {error.path}", url=describe)
    if isinstance(error, ResponseException):
        status = error.response.status_code
        classified = classify_status(status, error.response.headers, describe)
        if classified is not None:
            return classified
        return FetchError(FetchErrorKind.FATAL, f"unexpected HTTP {status}", url=describe, status=status)
    if isinstance(error, RequestException):
        return FetchError(FetchErrorKind.TRANSIENT, f"connection failed: {error.original_exception!r}", url=describe)
    if isinstance(error, OAuthException):
        return FetchError(FetchErrorKind.FATAL, f"authentication failed: {error}", url=describe)
    return FetchError(FetchErrorKind.FATAL, f"reddit request failed: {error!r}", url=describe)


class RedditClient:
    """Async facade over a praw.Reddit instance.

    praw is synchronous, so every call runs in the default executor. Listing
    iteration and lazy attribute loads happen inside that call.
    """

    def __init__(
        self,
        reddit: praw.Reddit,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.reddit = reddit
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    @classmethod
    def connect(
        cls,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 30,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "RedditClient":
        """Script-app (password grant) client. No request is made until first use."""
        reddit = praw.Reddit(
            client_id=client_id,
            client_secret=client_secret,
            username=username,
            password=password,
            user_agent=user_agent,
            check_for_updates=False,
            requestor_kwargs={"timeout": timeout_seconds},
        )
        logger.info("reddit_client_created", username=username)
        return cls(reddit, policy=policy, sleep=sleep)

    async def _call(self, func: Callable[[], Any], describe: str) -> Any:
        async def attempt():
            loop = asyncio.get_running_loop()
            try:
                return await loop.run_in_executor(None, func)
            except (PrawcoreException, PRAWException) as e:
                raise classify_reddit_error(e, describe) from e

        return await retry_with_backoff(
            attempt, self.policy, should_retry_fetch, sleep=self._sleep, describe=describe
        )

    async def hot_posts(self, subreddit: str, limit: int = HOT_POSTS_LIMIT) -> List[Dict[str, Any]]:
        def _sync_call():
            return [submission_data(s) for s in self.reddit.subreddit(subreddit).hot(limit=limit)]

        return await self._call(_sync_call, f"/r/{subreddit}/hot")

    async def post_comments(self, post_id: str) -> List[Dict[str, Any]]:
        """Top-level comments of a post; 'more' stubs are dropped, not expanded."""
        def _sync_call():
            submission = self.reddit.submission(id=post_id)
            submission.comments.replace_more(limit=0)
            return [comment_data(c) for c in submission.comments]

        return await self._call(_sync_call, f"/comments/{post_id}")



class RedditProvider(FeedProvider):
    """Hot posts and comment threads via the Reddit API."""

    format = "reddit"

    def __init__(self, client: RedditClient, limit: int = HOT_POSTS_LIMIT):
        self.client = client
        self.limit = limit

    async def fetch_feed(self, locator: str) -> Feed:
        subreddit = extract_subreddit(locator)
        logger.info("reddit_feed_fetching", subreddit=subreddit)

        posts = await self.client.hot_posts(subreddit, limit=self.limit)
        records = [post_record(p) for p in posts]
        feed = Feed(
            entries=[map_post(r) for r in records],
            source=f"r/{subreddit}",
            format=self.format,
            raw_payload=feed_dump(subreddit, records),
        )
        logger.info("feed_fetched", provider=self.format, subreddit=subreddit, entries=len(feed.entries))
        return feed

    async def fetch_comments(self, entry: Entry) -> CommentThread:
        comments = await self.client.post_comments(entry.id)
        records = [comment_record(c) for c in comments]
        thread = map_comments(entry.id, records, raw_payload=comments_dump(entry.id, records))
        logger.debug("comments_fetched", provider=self.format, entry_id=entry.id, comments=len(thread.comments))
        return thread
