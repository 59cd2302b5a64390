"""ChromaDB passage store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IPassageStore` with
on-disk persistence.  ChromaDB is used for storage and for narrowing the
candidate set with a ``where`` clause; ranking is still the exact cosine
scan shared with the in-memory store, so both backends return identical
results for identical contents.

Stored record layout (ChromaDB metadata values must be str, int, float or
bool):

* ``id`` -- the passage id (``<source_id>#<chunk_index>``)
* ``document`` -- passage content
* ``embedding`` -- passage vector
* metadata ``source_id``, ``chunk_index``, ``document_kind``
* metadata ``<field>__lc`` -- lower-cased copies of the string fields that
  filters may address, used for the ``where`` pre-filter
* metadata ``payload`` -- JSON of the remaining passage fields
"""

from __future__ import annotations

import json
import os
from collections import Counter
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from bankdocs.interfaces.passage_store import IPassageStore
from bankdocs.models.passages import Passage, ScoredPassage, StoreStats
from bankdocs.utils.errors import RAGError
from bankdocs.utils.similarity import matches_filters, rank_passages, validate_filters

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 5000

# String fields mirrored in lower case for the ``where`` pre-filter.
_FILTERABLE_FIELDS = (
    "title",
    "section_title",
    "source_ref",
    "source_name",
    "department",
    "document_kind",
    "version",
)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Passages always arrive with pre-computed vectors; this stops ChromaDB
    from downloading its default ONNX model when the collection is created.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("bankdocs passes pre-computed embeddings to ChromaDB")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBPassageStore(IPassageStore):
    """Persistent passage store backed by a ChromaDB collection.

    Parameters
    ----------
    persist_directory:
        Directory for ChromaDB's SQLite and segment files.
    collection_name:
        Collection holding the passages.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "bank_passages",
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # A collection persisted with another embedding function rejects ours.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        logger.info(
            "chromadb_store_opened",
            path=persist_directory,
            collection=collection_name,
            passages=self._collection.count(),
        )

    # ------------------------------------------------------------------
    # IPassageStore implementation
    # ------------------------------------------------------------------

    async def upsert(self, passage: Passage) -> None:
        await self.upsert_batch([passage])

    async def upsert_batch(self, passages: list[Passage]) -> int:
        """Upsert *passages*; a key repeated within the batch keeps its last write."""
        if not passages:
            return 0

        latest: dict[str, Passage] = {}
        for passage in passages:
            latest.pop(passage.id, None)
            latest[passage.id] = passage
        batch = list(latest.values())

        try:
            self._collection.upsert(
                ids=[p.id for p in batch],
                embeddings=[list(p.embedding) for p in batch],
                documents=[p.content for p in batch],
                metadatas=[self._passage_to_metadata(p) for p in batch],
            )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_upsert", count=len(batch))
        return len(passages)

    async def search(
        self,
        query_vector: list[float],
        max_results: int = 5,
        min_score: float = 0.0,
        filters: dict[str, Any] | None = None,
    ) -> list[ScoredPassage]:
        validate_filters(filters)
        where = self._translate_filters(filters) if filters else None
        try:
            candidates = self._fetch(where)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB search failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        # The where clause only narrows; the full filter semantics are applied here.
        candidates = [p for p in candidates if matches_filters(p.metadata, filters)]
        results = rank_passages(query_vector, candidates, max_results, min_score)

        logger.info(
            "chromadb_search",
            candidates=len(candidates),
            results=len(results),
            top_score=results[0].score if results else 0.0,
        )
        return results

    async def delete_by_source(self, source_id: str) -> int:
        try:
            existing = self._collection.get(where={"source_id": source_id})
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                self._collection.delete(where={"source_id": source_id})
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB delete_by_source failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_delete_by_source", source_id=source_id, deleted_count=count)
        return count

    async def count(self) -> int:
        try:
            return self._collection.count()
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def get_stats(self) -> StoreStats:
        """Aggregate statistics, paging metadata to stay under SQLite's bind limit."""
        try:
            total = self._collection.count()
            source_ids: set[str] = set()
            kinds: Counter[str] = Counter()
            for offset in range(0, total, _PAGE_SIZE):
                page = self._collection.get(include=["metadatas"], limit=_PAGE_SIZE, offset=offset)
                for meta in page["metadatas"] or []:
                    source_ids.add(str(meta.get("source_id", "")))
                    kinds[str(meta.get("document_kind", "General"))] += 1
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB get_stats failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        return StoreStats(
            total_passages=total,
            total_sources=len(source_ids),
            passages_by_kind=dict(kinds),
        )

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fetch(self, where: dict[str, Any] | None) -> list[Passage]:
        passages: list[Passage] = []
        offset = 0
        while True:
            kwargs: dict[str, Any] = {
                "include": ["embeddings", "documents", "metadatas"],
                "limit": _PAGE_SIZE,
                "offset": offset,
            }
            if where:
                kwargs["where"] = where
            page = self._collection.get(**kwargs)
            ids = page["ids"] or []
            if not ids:
                break
            embeddings = page["embeddings"]
            documents = page["documents"] or [""] * len(ids)
            metadatas = page["metadatas"] or [{}] * len(ids)
            for i in range(len(ids)):
                vector = embeddings[i] if embeddings is not None else []
                passages.append(self._metadata_to_passage(metadatas[i], documents[i], vector))
            if len(ids) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE
        return passages

    @staticmethod
    def _passage_to_metadata(passage: Passage) -> dict[str, str | int | float | bool]:
        meta: dict[str, str | int | float | bool] = {
            "source_id": passage.source_id,
            "chunk_index": passage.chunk_index,
            "document_kind": passage.metadata.document_kind.value,
            "payload": passage.model_dump_json(exclude={"content", "embedding"}),
        }
        for field in _FILTERABLE_FIELDS:
            value = passage.metadata.lookup(field)
            value = getattr(value, "value", value)
            if value:
                meta[f"{field}__lc"] = str(value).strip().lower()
        return meta

    @staticmethod
    def _metadata_to_passage(meta: dict[str, Any], document: str, vector: Any) -> Passage:
        data = json.loads(meta["payload"])
        data["content"] = document or ""
        data["embedding"] = [float(x) for x in vector]
        return Passage.model_validate(data)

    @staticmethod
    def _translate_filters(filters: dict[str, Any]) -> dict[str, Any] | None:
        """Translate equality and ``$in`` clauses on string fields to a ``where``.

        Other clauses are left to the in-process filter.
        """
        clauses: list[dict[str, Any]] = []
        for field, condition in filters.items():
            if field not in _FILTERABLE_FIELDS:
                continue
            key = f"{field}__lc"
            if isinstance(condition, dict):
                values = condition.get("$in")
                if isinstance(values, list) and values and all(isinstance(v, str) for v in values):
                    clauses.append({key: {"$in": [v.strip().lower() for v in values]}})
            elif isinstance(condition, str) and condition.strip():
                clauses.append({key: condition.strip().lower()})

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
