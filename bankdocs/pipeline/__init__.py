"""Background pipeline helpers."""

from bankdocs.pipeline.scheduler import PeriodicIngestionScheduler

__all__ = ["PeriodicIngestionScheduler"]
