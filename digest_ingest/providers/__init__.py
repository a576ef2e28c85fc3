"""Source providers - syndication feeds, the Reddit API and offline fixtures."""

from .threads import strip_root_post
from .syndication import SyndicationProvider
from .reddit import RedditClient, RedditProvider, extract_subreddit
from .fixture import FixtureProvider, FixtureWriter
from .factory import create_provider

__all__ = [
    "strip_root_post",
    "SyndicationProvider",
    "RedditClient", "RedditProvider", "extract_subreddit",
    "FixtureProvider", "FixtureWriter",
    "create_provider",
]
