"""Pytest configuration and shared fixtures."""

import pytest
from datetime import datetime, timezone
from pathlib import Path

# Add the project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))


ATOM_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:media="http://search.yahoo.com/mrss/">
  <title>LocalLLaMA</title>
  <entry>
    <id>t3_abc123</id>
    <title>New quantization results</title>
    <link href="https://www.reddit.com/r/LocalLLaMA/comments/abc123/new_quantization_results/"/>
    <updated>2024-05-01T12:00:00+00:00</updated>
    <published>2024-05-01T11:30:00+00:00</published>
    <content type="html">&lt;div&gt;&lt;p&gt;See &lt;a href="https://github.com/example/quant"&gt;the repo&lt;/a&gt;&lt;/p&gt; &lt;span&gt;&lt;a href="https://i.redd.it/chart.png"&gt;[link]&lt;/a&gt;&lt;/span&gt;&lt;/div&gt;</content>
    <media:thumbnail url="https://b.thumbs.redditmedia.com/abc.jpg"/>
  </entry>
  <entry>
    <id>t3_def456</id>
    <title>Weekly discussion</title>
    <link href="https://www.reddit.com/r/LocalLLaMA/comments/def456/weekly_discussion/"/>
    <updated>2024-05-01T10:00:00+00:00</updated>
    <content type="html">&lt;p&gt;Talk about anything.&lt;/p&gt;</content>
  </entry>
</feed>
"""


def atom_thread(root_id: str, replies) -> bytes:
    """Comment feed in the upstream shape: the root post first, then the replies."""
    items = [f"""  <entry>
    <id>{root_id}</id>
    <title>root</title>
    <updated>2024-05-01T12:00:00+00:00</updated>
    <content type="html">the original post</content>
  </entry>"""]
    for i, body in enumerate(replies):
        items.append(f"""  <entry>
    <id>t1_c{i}</id>
    <title>reply {i}</title>
    <updated>2024-05-01T12:0{i % 10}:00+00:00</updated>
    <content type="html">{body}</content>
  </entry>""")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<feed xmlns="http://www.w3.org/2005/Atom">\n'
        + "\n".join(items)
        + "\n</feed>\n"
    ).encode()


@pytest.fixture
def atom_feed_bytes():
    """Provide a two-entry Atom feed."""
    return ATOM_FEED.encode()


@pytest.fixture
def sleeps():
    """Provide a recording, non-blocking sleep function."""
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    fake_sleep.calls = recorded
    return fake_sleep


@pytest.fixture
def sample_entry():
    """Provide a sample Entry."""
    from digest_ingest.ingestion.interfaces import Entry
    return Entry(
        id="t3_abc123",
        title="New quantization results",
        raw_content='<a href="https://github.com/example/quant">repo</a>',
        published_at=datetime(2024, 5, 1, 11, 30, tzinfo=timezone.utc),
        permalink="https://www.reddit.com/r/LocalLLaMA/comments/abc123/new_quantization_results/",
    )


@pytest.fixture
def reddit_post_data():
    """Provide a Reddit API listing child (t3 data)."""
    return {
        "id": "abc123",
        "title": "Look at this chart",
        "selftext": "",
        "url": "https://i.redd.it/chart.png",
        "permalink": "/r/LocalLLaMA/comments/abc123/look_at_this_chart/",
        "created_utc": 1714563000.0,
        "score": 120,
        "num_comments": 14,
        "author": "someone",
        "is_self": False,
        "over_18": False,
        "spoiler": False,
        "thumbnail": "https://b.thumbs.redditmedia.com/abc.jpg",
    }


@pytest.fixture
def thread_payload():
    """Provide a builder for comment feed payloads."""
    return atom_thread
