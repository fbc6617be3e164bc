"""Scheduled story ingestion pipeline."""

from .runner import RunResult, RunStage, ScrapeRunner, run_ingestion_pass

__all__ = ["RunResult", "RunStage", "ScrapeRunner", "run_ingestion_pass"]
