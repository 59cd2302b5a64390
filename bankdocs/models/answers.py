"""Answer models returned by the retrieval/answer orchestrator."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class AnswerSource(BaseModel):
    """One passage cited in an answer."""

    model_config = ConfigDict(frozen=True)

    passage_id: str
    title: str
    section_title: str = ""
    source_ref: str = ""
    score: float = Field(description="Final (reranked) score of the passage.")


class QueryAnswer(BaseModel):
    """A synthesized, cited answer to a natural-language question."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(description="The question exactly as asked.")
    enhanced_query: str = Field(description="The question after abbreviation expansion.")
    answer_text: str = Field(description="Generated answer, always ending in a source list.")
    sources: list[AnswerSource] = Field(default_factory=list)
    latency_ms: float = Field(default=0.0, ge=0.0)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
