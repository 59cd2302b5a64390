"""Ingestion run tracking models.

Unlike the other models these are mutable: the ingestion orchestrator owns
the :class:`IngestionRun` for its whole lifetime and updates counts in
place so that status reads see live progress.  Readers receive deep copies
(see ``IngestionService.get_run_status``), and nothing touches a run once
its status is terminal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class RunStatus(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Lifecycle of an ingestion run (and of each source within it).

    RUNNING → COMPLETED | PARTIALLY_COMPLETED | FAILED | CANCELLED
    """

    RUNNING = "Running"
    COMPLETED = "Completed"
    PARTIALLY_COMPLETED = "PartiallyCompleted"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class SourceDetail(BaseModel):
    """Per-source outcome within a run."""

    status: RunStatus = RunStatus.RUNNING
    processed: int = Field(default=0, ge=0, description="Documents ingested successfully.")
    failed: int = Field(default=0, ge=0, description="Documents that raised while processing.")
    passages: int = Field(default=0, ge=0, description="Passages written to the store.")
    errors: list[str] = Field(
        default_factory=list, description="First N error messages for this source."
    )


class IngestionRun(BaseModel):
    """One end-to-end execution of the ingestion pipeline."""

    id: str
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    completed_at: datetime | None = None
    status: RunStatus = RunStatus.RUNNING
    source_filter: list[str] | None = None
    per_source_detail: dict[str, SourceDetail] = Field(default_factory=dict)
    total_processed: int = 0
    total_failed: int = 0
    errors: list[str] = Field(default_factory=list)
