"""Provider construction from source configuration."""

import asyncio
from typing import Awaitable, Callable, Optional

import aiohttp

from ..config.settings import Settings
from ..errors import InvalidLocatorError
from ..ingestion.fetcher import ResilientFetcher
from ..ingestion.interfaces import FeedProvider, SourceConfig
from .fixture import FixtureProvider
from .reddit import RedditClient, RedditProvider
from .syndication import SyndicationProvider

PROVIDER_KINDS = ("rss", "reddit")


def create_provider(
    source: SourceConfig,
    settings: Settings,
    session: Optional[aiohttp.ClientSession] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> FeedProvider:
    """Build the provider variant for a source.

    The rss variant reads through `session`, which the caller owns. The
    reddit variant talks to the API through its own praw client.
    """
    if source.provider not in PROVIDER_KINDS:
        raise InvalidLocatorError(f"unknown provider kind {source.provider!r} for source {source.name}")

    if settings.use_fixtures:
        return FixtureProvider(settings.fixtures_dir, source.name, format=source.provider)

    if source.provider == "rss":
        if session is None:
            raise ValueError("a client session is required for the rss provider")
        fetcher = ResilientFetcher(
            session=session,
            policy=settings.retry_policy(),
            user_agent=settings.user_agent,
            timeout_seconds=settings.fetch_timeout_seconds,
            sleep=sleep,
        )
        return SyndicationProvider(fetcher)

    if not settings.has_reddit_credentials():
        raise ValueError(
            "Reddit API credentials missing; set DI_REDDIT_CLIENT_ID, DI_REDDIT_CLIENT_SECRET, "
            "DI_REDDIT_USERNAME and DI_REDDIT_PASSWORD"
        )
    client = RedditClient.connect(
        settings.reddit_client_id,
        settings.reddit_client_secret,
        settings.reddit_username,
        settings.reddit_password,
        user_agent=settings.user_agent,
        timeout_seconds=settings.fetch_timeout_seconds,
        policy=settings.retry_policy(),
        sleep=sleep,
    )
    return RedditProvider(client)
