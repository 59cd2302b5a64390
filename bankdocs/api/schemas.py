"""Request and response bodies for the HTTP API.

Ingestion runs and answers are returned as the domain models themselves
(:class:`IngestionRun`, :class:`QueryAnswer`); only request bodies and the
API-specific envelopes live here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from bankdocs.models.passages import StoreStats


class TriggerIngestionRequest(BaseModel):
    """Body of ``POST /ingestion/runs``; an empty body ingests every source."""

    sources: list[str] | None = Field(
        default=None, description="Source names to ingest; omit for all configured sources."
    )


class ChatRequest(BaseModel):
    """A question for the answer service."""

    query: str = Field(..., max_length=2000)
    filters: dict[str, Any] | None = Field(
        default=None,
        description='Metadata pre-filters, e.g. {"department": "Treasury"}.',
    )
    max_results: int | None = Field(default=None, ge=1, le=50)
    min_score: float | None = Field(default=None, ge=-1.0, le=1.0)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be empty")
        return value


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
    retryable: bool = False


class HealthResponse(BaseModel):
    """Service health, store statistics and provider reachability."""

    status: str
    version: str
    store: StoreStats
    providers: dict[str, bool]
    sources: list[str]
    ingestion_running: bool
