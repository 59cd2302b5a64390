"""Exact cosine ranking and metadata filtering shared by passage stores.

Both store implementations delegate here so that ranking semantics are
identical regardless of where passages are persisted:

* filters are applied to the candidate set *before* scoring;
* similarity is exact cosine over every remaining candidate (no ANN index);
* results below ``min_score`` are dropped, the rest sorted by score
  descending, ties broken by newest ``created_at`` and then by id.

Filter syntax (same shape the API and CLI accept)::

    {"department": "Treasury"}                        # equality
    {"document_kind": {"$in": ["Policy", "Procedure"]}}
    {"effective_date": {"$gte": "2024-01-01"}}        # recency
    {"extra_key": {"$ne": "draft"}}                   # loader passthrough keys

String comparisons are case-insensitive; dates compare as ISO strings.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Sequence

import numpy as np

from bankdocs.models.passages import Passage, PassageMetadata, ScoredPassage
from bankdocs.utils.errors import RAGError

_OPERATORS = frozenset({"$in", "$nin", "$ne", "$gt", "$gte", "$lt", "$lte"})


# ---------------------------------------------------------------------------
# Cosine similarity
# ---------------------------------------------------------------------------


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``; 0.0 when either vector is all zeros.

    Raises
    ------
    RAGError
        If the vectors have different lengths.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise RAGError(
            message=f"Vector dimension mismatch: {va.shape[0]} != {vb.shape[0]}",
        )
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def rank_passages(
    query_vector: Sequence[float],
    candidates: Iterable[Passage],
    max_results: int,
    min_score: float,
) -> list[ScoredPassage]:
    """Score *candidates* against *query_vector* and return the ranked top hits."""
    passages = list(candidates)
    if not passages or max_results <= 0:
        return []

    query = np.asarray(query_vector, dtype=np.float64)
    dim = query.shape[0]
    for passage in passages:
        if len(passage.embedding) != dim:
            raise RAGError(
                message=(
                    f"Passage {passage.id} has a {len(passage.embedding)}-dim embedding, "
                    f"query has {dim}"
                ),
            )

    matrix = np.asarray([p.embedding for p in passages], dtype=np.float64)
    denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(
        dots, denominators, out=np.zeros_like(dots), where=denominators != 0.0
    )

    scored = [
        ScoredPassage(passage=p, score=float(s), vector_score=float(s))
        for p, s in zip(passages, scores, strict=True)
        if s >= min_score
    ]
    return sort_scored(scored)[:max_results]


def sort_scored(scored: Iterable[ScoredPassage]) -> list[ScoredPassage]:
    """Sort by score descending, then newest ``created_at``, then id."""
    return sorted(
        scored,
        key=lambda sp: (-sp.score, -sp.passage.created_at.timestamp(), sp.passage.id),
    )


# ---------------------------------------------------------------------------
# Metadata filters
# ---------------------------------------------------------------------------


def validate_filters(filters: dict[str, Any] | None) -> None:
    """Raise ``ValueError`` for operators outside the supported set."""
    for field, condition in (filters or {}).items():
        if isinstance(condition, dict):
            unknown = set(condition) - _OPERATORS
            if unknown:
                raise ValueError(
                    f"Unsupported filter operator(s) for '{field}': {sorted(unknown)}"
                )


def matches_filters(metadata: PassageMetadata, filters: dict[str, Any] | None) -> bool:
    """Return ``True`` if *metadata* satisfies every clause in *filters*."""
    if not filters:
        return True
    for field, condition in filters.items():
        value = _comparable(metadata.lookup(field))
        if isinstance(condition, dict):
            for op, operand in condition.items():
                if not _apply_operator(op, value, operand):
                    return False
        elif value != _comparable(condition):
            return False
    return True


def _apply_operator(op: str, value: Any, operand: Any) -> bool:
    if op == "$in":
        return value in [_comparable(o) for o in operand]
    if op == "$nin":
        return value not in [_comparable(o) for o in operand]
    if op == "$ne":
        return value != _comparable(operand)

    target = _comparable(operand)
    if value is None or target is None:
        return False
    try:
        if op == "$gt":
            return value > target
        if op == "$gte":
            return value >= target
        if op == "$lt":
            return value < target
        if op == "$lte":
            return value <= target
    except TypeError:
        return False
    raise ValueError(f"Unsupported filter operator: {op}")


def _comparable(value: Any) -> Any:
    """Normalize a metadata or filter value so the two compare sensibly."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip().lower()
    return value
