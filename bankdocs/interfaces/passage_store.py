"""Abstract base class for passage stores.

Defines the contract for persisting embedded passages and searching them.
Ranking is exact cosine similarity over the metadata-filtered candidate
set; implementations share :mod:`bankdocs.utils.similarity` so an
index-backed store can later replace the brute-force scan without touching
the answer service.

**Supported filter syntax** (the *filters* dict of :meth:`search`):

* ``{"department": "Treasury"}`` - equality (case-insensitive for strings).
* ``{"document_kind": {"$in": ["Policy", "Procedure"]}}`` - membership.
* ``{"effective_date": {"$gte": "2024-01-01"}}`` - range, for recency.
* ``{"<extra key>": value}`` - loader passthrough metadata.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from bankdocs.models.passages import Passage, ScoredPassage, StoreStats


# Concrete implementations: InMemoryPassageStore, ChromaDBPassageStore
# Located in: bankdocs/providers/store/
class IPassageStore(ABC):
    """Contract for passage persistence and similarity search.

    Each upsert is atomic per ``(source_id, chunk_index)`` key.  Searches
    running while an ingestion writes may see a partially updated passage
    set but never a half-written passage.
    """

    @abstractmethod
    async def upsert(self, passage: Passage) -> None:
        """Insert or replace the passage stored under ``passage.key``."""

    @abstractmethod
    async def upsert_batch(self, passages: list[Passage]) -> int:
        """Insert or replace every passage, in list order.

        Returns
        -------
        int
            Number of passages written.
        """

    @abstractmethod
    async def search(
        self,
        query_vector: list[float],
        max_results: int = 5,
        min_score: float = 0.0,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredPassage]:
        """Return the best passages for *query_vector*.

        Parameters
        ----------
        query_vector:
            Embedding of the (enhanced) query.
        max_results:
            Maximum number of results.
        min_score:
            Minimum cosine similarity for a passage to be returned.
        filters:
            Metadata pre-filters (see module docstring).

        Returns
        -------
        list[ScoredPassage]
            Ordered by score descending, ties by newest ``created_at``.

        Raises
        ------
        bankdocs.utils.errors.RAGError
            On dimension mismatch or backend failure.
        """

    @abstractmethod
    async def delete_by_source(self, source_id: str) -> int:
        """Remove all passages of *source_id*; return how many were removed."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored passages."""

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Return aggregate statistics."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"memory"`` or ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store can serve reads and writes."""
