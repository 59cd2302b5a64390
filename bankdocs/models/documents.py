"""Document-side data models: raw documents, parsed documents and text spans.

Raw documents come out of a source loader untouched; the parser turns them
into a :class:`ParsedDocument` carrying normalized text and the extracted
:class:`DocumentMetadata`; the chunker slices the normalized text into
:class:`TextSpan` objects.  All models are frozen.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# DocumentKind - closed classification used as a search filter.
# ---------------------------------------------------------------------------
class DocumentKind(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Kind of banking reference document."""

    POLICY = "Policy"
    PROCEDURE = "Procedure"
    REFERENCE_DATA = "ReferenceData"
    GENERAL = "General"


# ---------------------------------------------------------------------------
# RawDocument - what a source loader yields.
# ---------------------------------------------------------------------------
class RawDocument(BaseModel):
    """A document exactly as read from its source.

    Identity is ``source_path``: re-reading the same path yields a document
    that replaces the passages of the previous read.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Loader-assigned identifier (file path, issue key, page id).")
    content: str = Field(description="Raw text or markup content.")
    source_path: str = Field(
        description="Stable location of the document, e.g. 'jira://REF-12' or a file path."
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Loader-specific metadata (file name, issue status, page version, ...).",
    )
    load_error: str | None = Field(
        default=None,
        description="Set when the loader found the document but could not read it; "
        "content is empty and the document is counted as failed.",
    )


# ---------------------------------------------------------------------------
# DocumentMetadata - typed banking metadata plus an open extension map.
# ---------------------------------------------------------------------------
class DocumentMetadata(BaseModel):
    """Banking metadata extracted from a document.

    The well-known fields are the ones the pipeline filters on; anything
    source-specific travels in ``extensions``.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="", description="Document title.")
    department: str = Field(default="", description="Owning department, empty when unknown.")
    document_kind: DocumentKind = Field(
        default=DocumentKind.GENERAL, description="Policy, Procedure, ReferenceData or General."
    )
    effective_date: date | None = Field(
        default=None, description="Date the document takes effect, if stated."
    )
    version: str = Field(default="", description="Document version string, empty when unknown.")
    extensions: dict[str, Any] = Field(
        default_factory=dict, description="Source-specific passthrough metadata."
    )


class ParsedDocument(BaseModel):
    """Normalized document text plus its extracted metadata."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Normalized document text.")
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)


# ---------------------------------------------------------------------------
# TextSpan - output of the chunker.
# ---------------------------------------------------------------------------
class SpanCompleteness(str, Enum):  # noqa: UP042
    """Whether a span holds a whole section or a piece of one."""

    COMPLETE = "complete"
    PARTIAL = "partial"


class TextSpan(BaseModel):
    """A contiguous, section-labelled slice of parsed document text.

    ``content`` includes the ``[Section: ...]`` marker.  Offsets point into
    the parsed content; for partial spans ``start_offset`` includes the
    overlap carried over from the previous span.
    """

    model_config = ConfigDict(frozen=True)

    content: str
    start_offset: int = Field(ge=0)
    end_offset: int = Field(ge=0)
    section_title: str = ""
    completeness: SpanCompleteness = SpanCompleteness.COMPLETE
