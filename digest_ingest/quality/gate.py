"""Comment-count quality gate."""

from typing import List

import structlog

from ..ingestion.interfaces import Entry

logger = structlog.get_logger()

DEFAULT_MIN_COMMENTS = 10


def filter_entries(entries: List[Entry], min_comments: int) -> List[Entry]:
    """Keep entries with strictly more than `min_comments` comments, in order."""
    return [e for e in entries if len(e.comments) > min_comments]


class QualityGate:
    """Drops entries whose discussion is too thin to be worth a digest slot."""

    def __init__(self, min_comments: int = DEFAULT_MIN_COMMENTS):
        if min_comments < 0:
            raise ValueError("min_comments cannot be negative")
        self.min_comments = min_comments

    def apply(self, entries: List[Entry], source: str = "") -> List[Entry]:
        kept = filter_entries(entries, self.min_comments)
        logger.info(
            "quality_gate_applied",
            source=source,
            threshold=self.min_comments,
            kept=len(kept),
            dropped=len(entries) - len(kept),
        )
        return kept
