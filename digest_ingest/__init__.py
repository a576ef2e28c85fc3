"""Resilient ingestion and enrichment of syndicated posts and their discussions."""

__version__ = "0.1.0"
