"""Offline provider reading captured feeds from disk, and the writer that captures them."""

from pathlib import Path
from typing import Union

import structlog

from ..errors import InvalidLocatorError
from ..ingestion.interfaces import CommentThread, Entry, Feed, FeedProvider
from . import reddit, syndication

logger = structlog.get_logger()

FORMAT_EXTENSIONS = {
    "rss": "rss",
    "reddit": "json",
}


def normalize_persona_name(name: str) -> str:
    """Directory-safe persona name: lower-cased with slashes removed."""
    return name.lower().replace("/", "")


def _safe_stem(entry_id: str) -> str:
    # Syndication ids are often URLs
    return entry_id.replace("/", "_").replace("\\", "_")


def _extension(format: str) -> str:
    try:
        return FORMAT_EXTENSIONS[format]
    except KeyError:
        raise InvalidLocatorError(f"unknown fixture format: {format}") from None


class _FixtureLayout:
    """<fixtures_dir>/<format>/<persona>/{<persona>,<entry id>}.<ext>"""

    def __init__(self, fixtures_dir: Union[str, Path], persona: str, format: str):
        self.format = format
        self.extension = _extension(format)
        self.persona = normalize_persona_name(persona)
        self.directory = Path(fixtures_dir) / format / self.persona

    def feed_path(self) -> Path:
        return self.directory / f"{self.persona}.{self.extension}"

    def thread_path(self, entry_id: str) -> Path:
        return self.directory / f"{_safe_stem(entry_id)}.{self.extension}"


class FixtureProvider(FeedProvider):
    """Serves a persona's feed and comment threads from fixture files."""

    def __init__(self, fixtures_dir: Union[str, Path], persona: str, format: str = "rss"):
        self.layout = _FixtureLayout(fixtures_dir, persona, format)
        self.format = format

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise InvalidLocatorError(f"fixture not readable: {path} ({e.strerror or e})") from e

    async def fetch_feed(self, locator: str) -> Feed:
        # The locator only names the live source; fixtures are keyed by persona
        path = self.layout.feed_path()
        payload = self._read(path)
        if self.format == "reddit":
            feed = reddit.parse_feed_dump(payload, source=locator or str(path))
        else:
            feed = syndication.parse_feed(payload, source=locator or str(path))
        logger.info("fixture_feed_loaded", path=str(path), entries=len(feed.entries))
        return feed

    async def fetch_comments(self, entry: Entry) -> CommentThread:
        path = self.layout.thread_path(entry.id)
        payload = self._read(path)
        if self.format == "reddit":
            return reddit.parse_comments_dump(payload, entry.id, source=str(path))
        return syndication.parse_comment_thread(payload, source=str(path))


class FixtureWriter:
    """Captures live payloads into the fixture layout for offline replay."""

    def __init__(self, fixtures_dir: Union[str, Path], persona: str, format: str = "rss"):
        self.layout = _FixtureLayout(fixtures_dir, persona, format)

    def _write(self, path: Path, payload: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        logger.debug("fixture_written", path=str(path), bytes=len(payload))
        return path

    def write_feed(self, feed: Feed) -> Path:
        return self._write(self.layout.feed_path(), feed.raw_payload)

    def write_thread(self, entry: Entry, thread: CommentThread) -> Path:
        return self._write(self.layout.thread_path(entry.id), thread.raw_payload)
