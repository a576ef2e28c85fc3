"""Ingestion pipeline: fetch, cap, enrich and gate each configured source."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

import aiohttp
import structlog

from ..config.settings import Settings
from ..enrichment.content_miner import ContentMiner
from ..enrichment.orchestrator import EnrichmentOrchestrator
from ..errors import ParseError
from ..ingestion.interfaces import Entry, FeedProvider, SourceConfig
from ..providers.factory import create_provider
from ..providers.fixture import FixtureWriter
from ..quality.gate import QualityGate

logger = structlog.get_logger()


@dataclass
class PipelineResult:
    """Outcome of one source run."""
    source: str
    entries: List[Entry] = field(default_factory=list)
    stats: dict = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        """Convert to dictionary for hand-off to downstream consumers."""
        return {
            "source": self.source,
            "entries": [e.to_dict() for e in self.entries],
            "stats": dict(self.stats),
            "error": str(self.error) if self.error is not None else None,
        }


class IngestionPipeline:
    """Runs sources through fetch → enrich → quality gate."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        miner: Optional[ContentMiner] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        provider_factory: Callable[..., FeedProvider] = create_provider,
    ):
        self.settings = settings or Settings()
        self.session = session
        self.miner = miner or ContentMiner()
        self._sleep = sleep
        self._provider_factory = provider_factory
        self._owns_session = session is None

    async def __aenter__(self):
        if self.session is None and not self.settings.use_fixtures:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.fetch_timeout_seconds),
                headers={"User-Agent": self.settings.user_agent},
            )
            self._owns_session = True
        return self

    async def __aexit__(self, *args):
        if self._owns_session and self.session:
            await self.session.close()
            self.session = None

    async def run(self, source: SourceConfig) -> PipelineResult:
        """Run one source. Errors propagate to the caller."""
        start = datetime.now()
        settings = self.settings
        provider = self._provider_factory(source, settings, self.session, self._sleep)

        writer = None
        if settings.dump_fixtures and not settings.use_fixtures:
            writer = FixtureWriter(settings.fixtures_dir, source.name, format=provider.format)

        feed = await provider.fetch_feed(source.url)
        if not feed.entries:
            raise ParseError("no entries", source=source.url or source.name)
        fetched = len(feed.entries)

        if writer is not None:
            try:
                writer.write_feed(feed)
            except OSError as e:
                logger.warning("fixture_write_failed", source=source.name, error=str(e))

        if settings.max_entries and fetched > settings.max_entries:
            logger.info("entries_capped", source=source.name, fetched=fetched, cap=settings.max_entries)
            feed.entries = feed.entries[:settings.max_entries]

        orchestrator = EnrichmentOrchestrator(
            provider,
            miner=self.miner,
            max_concurrency=settings.max_concurrent_comment_fetches,
            deadline_seconds=settings.enrichment_deadline_seconds,
            fixture_writer=writer,
        )
        enriched = await orchestrator.enrich(feed)

        gate = QualityGate(source.threshold(settings.quality_filter_threshold))
        kept = gate.apply(enriched, source=source.name)

        stats = {
            "fetched": fetched,
            "enriched": len(enriched),
            "kept": len(kept),
            "elapsed_seconds": (datetime.now() - start).total_seconds(),
        }
        logger.info("source_run_complete", source=source.name, **stats)
        return PipelineResult(source=source.name, entries=kept, stats=stats)

    async def run_all(self, sources: List[SourceConfig]) -> List[PipelineResult]:
        """Run every enabled source concurrently; one failure doesn't stop the others."""
        active = [s for s in sources if s.enabled]
        outcomes = await asyncio.gather(*(self.run(s) for s in active), return_exceptions=True)

        results = []
        for source, outcome in zip(active, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error("source_run_failed", source=source.name, error=str(outcome), error_type=type(outcome).__name__)
                results.append(PipelineResult(source=source.name, error=outcome))
            else:
                results.append(outcome)
        return results


async def run_pipeline(sources: List[SourceConfig], settings: Optional[Settings] = None) -> List[PipelineResult]:
    """Convenience function to run all sources with a fresh pipeline."""
    async with IngestionPipeline(settings) as pipeline:
        return await pipeline.run_all(sources)
