"""In-memory passage store.

The default :class:`IPassageStore`.  Passages live in a dict keyed by
``(source_id, chunk_index)``; every search is an exact cosine scan over the
filtered candidates (see :mod:`bankdocs.utils.similarity`).

Mutations never await, so on the event loop each upsert or delete is atomic
and a search always works on a consistent snapshot of the dict.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

import structlog

from bankdocs.interfaces.passage_store import IPassageStore
from bankdocs.models.passages import Passage, ScoredPassage, StoreStats
from bankdocs.utils.similarity import matches_filters, rank_passages, validate_filters

logger = structlog.get_logger(logger_name=__name__)


class InMemoryPassageStore(IPassageStore):
    """Dict-backed passage store; contents are lost when the process exits."""

    def __init__(self) -> None:
        self._passages: dict[tuple[str, int], Passage] = {}

    # ------------------------------------------------------------------
    # IPassageStore implementation
    # ------------------------------------------------------------------

    async def upsert(self, passage: Passage) -> None:
        self._passages[passage.key] = passage

    async def upsert_batch(self, passages: list[Passage]) -> int:
        for passage in passages:
            self._passages[passage.key] = passage
        return len(passages)

    async def search(
        self,
        query_vector: list[float],
        max_results: int = 5,
        min_score: float = 0.0,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredPassage]:
        validate_filters(filters)
        snapshot = list(self._passages.values())
        candidates = [p for p in snapshot if matches_filters(p.metadata, filters)]
        results = rank_passages(query_vector, candidates, max_results, min_score)

        logger.debug(
            "memory_store_search",
            stored=len(snapshot),
            candidates=len(candidates),
            results=len(results),
            top_score=results[0].score if results else 0.0,
        )
        return results

    async def delete_by_source(self, source_id: str) -> int:
        keys = [key for key in self._passages if key[0] == source_id]
        for key in keys:
            del self._passages[key]
        if keys:
            logger.debug("memory_store_delete_by_source", source_id=source_id, deleted=len(keys))
        return len(keys)

    async def count(self) -> int:
        return len(self._passages)

    async def get_stats(self) -> StoreStats:
        snapshot = list(self._passages.values())
        kinds = Counter(p.metadata.document_kind.value for p in snapshot)
        return StoreStats(
            total_passages=len(snapshot),
            total_sources=len({p.source_id for p in snapshot}),
            passages_by_kind=dict(kinds),
        )

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True
