"""Unit tests for fixture replay, fixture capture and provider construction."""

import json

import aiohttp
import pytest

from digest_ingest.config.settings import Settings
from digest_ingest.errors import InvalidLocatorError, ParseError
from digest_ingest.ingestion.interfaces import CommentThread, Entry, Feed, SourceConfig
from digest_ingest.providers.factory import create_provider
from digest_ingest.providers.fixture import FixtureProvider, FixtureWriter, normalize_persona_name
from digest_ingest.providers.reddit import RedditProvider, post_record
from digest_ingest.providers.syndication import SyndicationProvider


class TestNormalizePersonaName:
    """Tests for normalize_persona_name."""

    def test_lowercases_and_strips_slashes(self):
        assert normalize_persona_name("LocalLLaMA") == "localllama"
        assert normalize_persona_name("r/LocalLLaMA") == "rlocalllama"


@pytest.mark.asyncio
class TestFixtureProvider:
    """Tests for FixtureProvider."""

    async def test_rss_fixtures(self, tmp_path, atom_feed_bytes, thread_payload):
        """Should serve the feed and threads from the rss layout."""
        persona_dir = tmp_path / "rss" / "localllama"
        persona_dir.mkdir(parents=True)
        (persona_dir / "localllama.rss").write_bytes(atom_feed_bytes)
        (persona_dir / "t3_abc123.rss").write_bytes(thread_payload("t3_abc123", ["one", "two"]))

        provider = FixtureProvider(tmp_path, "LocalLLaMA", format="rss")
        feed = await provider.fetch_feed("https://www.reddit.com/r/LocalLLaMA/.rss")
        thread = await provider.fetch_comments(feed.entries[0])

        assert [e.id for e in feed.entries] == ["t3_abc123", "t3_def456"]
        assert thread.root_included is True
        assert [c.body for c in thread.comments] == ["the original post", "one", "two"]

    async def test_reddit_fixtures(self, tmp_path, reddit_post_data):
        persona_dir = tmp_path / "reddit" / "localllama"
        persona_dir.mkdir(parents=True)
        (persona_dir / "localllama.json").write_text(json.dumps({
            "subreddit": "LocalLLaMA",
            "posts": [post_record(reddit_post_data)],
        }))
        (persona_dir / "abc123.json").write_text(json.dumps({
            "post_id": "abc123",
            "comments": [
                {"id": "c1", "body": "nice", "parent_id": "t3_abc123"},
                {"id": "c2", "body": "reply", "parent_id": "t1_c1"},
            ],
        }))

        provider = FixtureProvider(tmp_path, "LocalLLaMA", format="reddit")
        feed = await provider.fetch_feed("")
        thread = await provider.fetch_comments(feed.entries[0])

        assert feed.entries[0].image_urls == {"https://i.redd.it/chart.png"}
        assert [c.body for c in thread.comments] == ["nice"]

    async def test_missing_fixture(self, tmp_path):
        provider = FixtureProvider(tmp_path, "nobody", format="rss")
        with pytest.raises(InvalidLocatorError):
            await provider.fetch_feed("")

    async def test_missing_thread(self, tmp_path, atom_feed_bytes):
        persona_dir = tmp_path / "rss" / "localllama"
        persona_dir.mkdir(parents=True)
        (persona_dir / "localllama.rss").write_bytes(atom_feed_bytes)

        provider = FixtureProvider(tmp_path, "localllama", format="rss")
        with pytest.raises(InvalidLocatorError):
            await provider.fetch_comments(Entry(id="t3_unknown"))

    async def test_malformed_fixture(self, tmp_path):
        persona_dir = tmp_path / "reddit" / "broken"
        persona_dir.mkdir(parents=True)
        (persona_dir / "broken.json").write_text("{oops")

        provider = FixtureProvider(tmp_path, "broken", format="reddit")
        with pytest.raises(ParseError):
            await provider.fetch_feed("")

    async def test_unknown_format(self, tmp_path):
        with pytest.raises(InvalidLocatorError):
            FixtureProvider(tmp_path, "x", format="atom")


class TestFixtureWriter:
    """Tests for FixtureWriter."""

    def test_writes_into_layout(self, tmp_path):
        """Captured payloads should land where FixtureProvider looks for them."""
        writer = FixtureWriter(tmp_path, "LocalLLaMA", format="rss")
        feed_path = writer.write_feed(Feed(raw_payload=b"<feed/>"))
        thread_path = writer.write_thread(
            Entry(id="https://example.com/posts/1"),
            CommentThread(raw_payload=b"<thread/>"),
        )

        assert feed_path == tmp_path / "rss" / "localllama" / "localllama.rss"
        assert feed_path.read_bytes() == b"<feed/>"
        assert thread_path.parent == feed_path.parent
        assert "/" not in thread_path.name
        assert thread_path.read_bytes() == b"<thread/>"


@pytest.mark.asyncio
class TestCreateProvider:
    """Tests for create_provider."""

    async def test_rss_provider(self):
        settings = Settings(_env_file=None)
        async with aiohttp.ClientSession() as session:
            provider = create_provider(SourceConfig("tech", "https://example.com/feed", provider="rss"), settings, session)
        assert isinstance(provider, SyndicationProvider)
        assert provider.fetcher.policy == settings.retry_policy()

    async def test_reddit_provider(self):
        """The reddit variant builds its own praw client and needs no session."""
        settings = Settings(
            _env_file=None,
            reddit_client_id="id",
            reddit_client_secret="secret",
            reddit_username="user",
            reddit_password="pass",
        )
        provider = create_provider(SourceConfig("llama", "https://www.reddit.com/r/LocalLLaMA/"), settings)
        assert isinstance(provider, RedditProvider)
        assert provider.client.reddit.config.client_id == "id"
        assert provider.client.policy == settings.retry_policy()

    async def test_reddit_without_credentials(self):
        settings = Settings(_env_file=None)
        with pytest.raises(ValueError):
            create_provider(SourceConfig("llama", "https://www.reddit.com/r/LocalLLaMA/"), settings)

    async def test_rss_requires_session(self):
        with pytest.raises(ValueError):
            create_provider(SourceConfig("tech", "https://example.com/feed", provider="rss"), Settings(_env_file=None))

    async def test_fixtures_need_no_session(self, tmp_path):
        settings = Settings(_env_file=None, use_fixtures=True, fixtures_dir=tmp_path)
        provider = create_provider(SourceConfig("llama", provider="reddit"), settings)
        assert isinstance(provider, FixtureProvider)
        assert provider.format == "reddit"

    async def test_unknown_kind(self):
        with pytest.raises(InvalidLocatorError):
            create_provider(SourceConfig("x", provider="mastodon"), Settings(_env_file=None))
