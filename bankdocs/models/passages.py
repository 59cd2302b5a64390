"""Passage-store data models.

A :class:`Passage` is the persisted, embedded unit of the knowledge base.
It is keyed by ``(source_id, chunk_index)``; writing the same key twice
replaces the earlier passage.  Search results wrap passages in
:class:`ScoredPassage`.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bankdocs.models.documents import DocumentKind, SpanCompleteness


def passage_id(source_id: str, chunk_index: int) -> str:
    """Return the canonical id for the passage at ``(source_id, chunk_index)``."""
    return f"{source_id}#{chunk_index}"


# ---------------------------------------------------------------------------
# PassageMetadata - merged source, document and span metadata.
# ---------------------------------------------------------------------------
class PassageMetadata(BaseModel):
    """Metadata carried by every passage and used for search filters.

    Filters address the typed fields by name; any other key is looked up in
    ``extra`` (the loader's passthrough metadata).
    """

    model_config = ConfigDict(frozen=True)

    title: str = ""
    section_title: str = ""
    source_ref: str = Field(default="", description="Where the passage came from (path or URL).")
    source_name: str = Field(default="", description="Name of the loader that produced it.")
    department: str = ""
    document_kind: DocumentKind = DocumentKind.GENERAL
    effective_date: date | None = None
    version: str = ""
    completeness: SpanCompleteness = SpanCompleteness.COMPLETE
    start_offset: int = 0
    end_offset: int = 0
    extra: dict[str, Any] = Field(default_factory=dict)

    def lookup(self, field: str) -> Any:
        """Return the value of a typed field or ``extra`` key, ``None`` if absent."""
        if field != "extra" and field in type(self).model_fields:
            return getattr(self, field)
        return self.extra.get(field)


# ---------------------------------------------------------------------------
# Passage - the stored unit.
# ---------------------------------------------------------------------------
class Passage(BaseModel):
    """An embedded chunk of a source document."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Canonical id, see :func:`passage_id`.")
    source_id: str = Field(description="Identity of the source document (its source path).")
    chunk_index: int = Field(ge=0, description="Position of the chunk within the document.")
    content: str = Field(description="Span text including the section marker.")
    embedding: list[float] = Field(default_factory=list, description="Embedding vector.")
    metadata: PassageMetadata = Field(default_factory=PassageMetadata)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @property
    def key(self) -> tuple[str, int]:
        return (self.source_id, self.chunk_index)


class ScoredPassage(BaseModel):
    """A passage returned by a search, with its ranking score.

    ``score`` is what results are ordered by; ``vector_score`` keeps the
    raw cosine similarity so reranking never loses it.
    """

    model_config = ConfigDict(frozen=True)

    passage: Passage
    score: float
    vector_score: float


class StoreStats(BaseModel):
    """Aggregate statistics for a passage store."""

    model_config = ConfigDict(frozen=True)

    total_passages: int = Field(default=0, ge=0)
    total_sources: int = Field(default=0, ge=0)
    passages_by_kind: dict[str, int] = Field(default_factory=dict)
