"""Pipeline orchestration - per-source and multi-source runs."""

from .run import IngestionPipeline, PipelineResult, run_pipeline

__all__ = ["IngestionPipeline", "PipelineResult", "run_pipeline"]
