"""Pipeline orchestration."""

from .orchestrator import IngestionPipeline, get_pipeline, shutdown_pipeline

__all__ = ["IngestionPipeline", "get_pipeline", "shutdown_pipeline"]
