"""Entry enrichment - content mining and comment-thread fan-out."""

from .content_miner import ContentMiner
from .orchestrator import EnrichmentOrchestrator

__all__ = [
    "ContentMiner",
    "EnrichmentOrchestrator",
]
