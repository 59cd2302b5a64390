"""bankdocs domain models - re-exports all public model classes.

    - documents.py  - raw/parsed documents, banking metadata, text spans
    - passages.py   - stored passages, search results, store statistics
    - ingestion.py  - ingestion run and per-source tracking
    - answers.py    - cited answers returned by the answer service
"""

from __future__ import annotations

from bankdocs.models.answers import AnswerSource, QueryAnswer
from bankdocs.models.documents import (
    DocumentKind,
    DocumentMetadata,
    ParsedDocument,
    RawDocument,
    SpanCompleteness,
    TextSpan,
)
from bankdocs.models.ingestion import IngestionRun, RunStatus, SourceDetail
from bankdocs.models.passages import (
    Passage,
    PassageMetadata,
    ScoredPassage,
    StoreStats,
    passage_id,
)

__all__ = [
    # documents
    "DocumentKind",
    "DocumentMetadata",
    "ParsedDocument",
    "RawDocument",
    "SpanCompleteness",
    "TextSpan",
    # passages
    "Passage",
    "PassageMetadata",
    "ScoredPassage",
    "StoreStats",
    "passage_id",
    # ingestion
    "IngestionRun",
    "RunStatus",
    "SourceDetail",
    # answers
    "AnswerSource",
    "QueryAnswer",
]
