"""Quality filtering of enriched entries."""

from .gate import QualityGate, filter_entries

__all__ = ["QualityGate", "filter_entries"]
