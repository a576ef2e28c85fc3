"""Concurrent comment-thread enrichment for a fetched feed."""

import asyncio
import dataclasses
import time
from typing import List, Optional

import structlog

from ..errors import EnrichmentDeadlineExceeded, EnrichmentError
from ..ingestion.interfaces import Entry, Feed, FeedProvider
from ..providers.threads import strip_root_post
from .content_miner import ContentMiner

logger = structlog.get_logger()


class EnrichmentOrchestrator:
    """Attaches comments, images and external links to every entry of a feed.

    Comment threads are fetched concurrently, at most `max_concurrency` at a
    time. The batch is all-or-nothing: the first failing entry cancels the
    remaining fetches and fails the call.
    """

    def __init__(
        self,
        provider: FeedProvider,
        miner: Optional[ContentMiner] = None,
        max_concurrency: int = 5,
        deadline_seconds: Optional[float] = None,
        fixture_writer=None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.provider = provider
        self.miner = miner or ContentMiner()
        self.max_concurrency = max_concurrency
        self.deadline_seconds = deadline_seconds
        self.fixture_writer = fixture_writer

    async def enrich(self, feed: Feed) -> List[Entry]:
        """Return enriched copies of the feed's entries, in feed order."""
        if not feed.entries:
            return []

        start_time = time.time()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.ensure_future(self._enrich_one(entry, semaphore))
            for entry in feed.entries
        ]

        try:
            if self.deadline_seconds is None:
                enriched = await asyncio.gather(*tasks)
            else:
                enriched = await asyncio.wait_for(asyncio.gather(*tasks), timeout=self.deadline_seconds)
        except asyncio.TimeoutError:
            pending = sum(1 for t in tasks if not t.done() or t.cancelled())
            await self._cancel(tasks)
            logger.error("enrichment_deadline_exceeded", source=feed.source, deadline_s=self.deadline_seconds, pending=pending)
            raise EnrichmentDeadlineExceeded(self.deadline_seconds, pending=pending)
        except EnrichmentError as e:
            await self._cancel(tasks)
            logger.error("enrichment_failed", source=feed.source, entry_id=e.entry_id, error=str(e.cause))
            raise
        except (asyncio.CancelledError, Exception):
            await self._cancel(tasks)
            raise

        logger.info(
            "enrichment_complete",
            source=feed.source,
            entries=len(enriched),
            comments=sum(len(e.comments) for e in enriched),
            time_ms=int((time.time() - start_time) * 1000),
        )
        return list(enriched)

    async def _cancel(self, tasks) -> None:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _enrich_one(self, entry: Entry, semaphore: asyncio.Semaphore) -> Entry:
        async with semaphore:
            try:
                thread = await self.provider.fetch_comments(entry)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise EnrichmentError(entry.id, e) from e

        if self.fixture_writer is not None:
            try:
                self.fixture_writer.write_thread(entry, thread)
            except OSError as e:
                logger.warning("fixture_write_failed", entry_id=entry.id, error=str(e))

        thread = strip_root_post(entry, thread)

        image_urls = set(entry.image_urls)
        external_urls = set(entry.external_urls)
        if not image_urls or not external_urls:
            images, links = self.miner.mine(entry.raw_content)
            if not image_urls:
                image_urls = images
            if not external_urls:
                external_urls = links

        logger.debug("entry_enriched", entry_id=entry.id, comments=len(thread.comments), images=len(image_urls))
        return dataclasses.replace(
            entry,
            comments=list(thread.comments),
            image_urls=image_urls,
            external_urls=external_urls,
        )
