"""Unit tests for the ChromaDB passage store.

Runs against a real persistent client in ``tmp_path``; vectors are supplied
explicitly so no embedding model is involved.
"""

from __future__ import annotations

from datetime import date

import pytest

from bankdocs.models.documents import DocumentKind
from bankdocs.providers.store.chromadb_store import ChromaDBPassageStore
from tests.conftest import make_passage


@pytest.fixture()
def store(tmp_path) -> ChromaDBPassageStore:
    return ChromaDBPassageStore(
        persist_directory=str(tmp_path / "chroma"),
        collection_name="test_passages",
    )


def _seed():
    return [
        make_passage(
            "/docs/wire.md",
            0,
            "Wire transfer approval threshold.",
            embedding=[1.0, 0.0, 0.1],
            department="Treasury",
            document_kind=DocumentKind.POLICY,
            effective_date=date(2024, 3, 1),
            section_title="Approvals",
            extra={"status": "Done"},
        ),
        make_passage(
            "/docs/wire.md",
            1,
            "Wire cut-off times.",
            embedding=[0.9, 0.1, 0.1],
            department="Treasury",
            document_kind=DocumentKind.POLICY,
            effective_date=date(2024, 3, 1),
        ),
        make_passage(
            "/docs/kyc.md",
            0,
            "KYC refresh procedure.",
            embedding=[0.0, 1.0, 0.1],
            title="KYC Refresh",
            department="Compliance",
            document_kind=DocumentKind.PROCEDURE,
            effective_date=date(2021, 1, 1),
        ),
    ]


class TestChromaDBPassageStore:
    def test_identity(self, store: ChromaDBPassageStore) -> None:
        assert store.get_provider_name() == "chromadb"
        assert store.is_available() is True

    @pytest.mark.asyncio
    async def test_upsert_and_round_trip(self, store: ChromaDBPassageStore) -> None:
        passages = _seed()
        assert await store.upsert_batch(passages) == 3
        assert await store.count() == 3

        results = await store.search([1.0, 0.0, 0.1], max_results=1, min_score=0.0)

        assert len(results) == 1
        found = results[0].passage
        assert found.id == "/docs/wire.md#0"
        assert found.content == "Wire transfer approval threshold."
        assert found.metadata.department == "Treasury"
        assert found.metadata.effective_date == date(2024, 3, 1)
        assert found.metadata.extra == {"status": "Done"}
        assert found.embedding == pytest.approx([1.0, 0.0, 0.1])
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_key(self, store: ChromaDBPassageStore) -> None:
        await store.upsert(make_passage("/a", 0, "old", embedding=[1.0, 0.0, 0.0]))
        await store.upsert(make_passage("/a", 0, "new", embedding=[1.0, 0.0, 0.0]))

        assert await store.count() == 1
        results = await store.search([1.0, 0.0, 0.0], 5, 0.0)
        assert results[0].passage.content == "new"

    @pytest.mark.asyncio
    async def test_duplicate_ids_in_batch_keep_last(self, store: ChromaDBPassageStore) -> None:
        written = await store.upsert_batch(
            [
                make_passage("/a", 0, "first", embedding=[1.0, 0.0, 0.0]),
                make_passage("/a", 0, "second", embedding=[1.0, 0.0, 0.0]),
            ]
        )
        assert written == 2
        assert await store.count() == 1
        results = await store.search([1.0, 0.0, 0.0], 5, 0.0)
        assert results[0].passage.content == "second"

    @pytest.mark.asyncio
    async def test_threshold(self, store: ChromaDBPassageStore) -> None:
        await store.upsert_batch(_seed())
        results = await store.search([0.0, 1.0, 0.0], max_results=5, min_score=0.9)
        assert [r.passage.source_id for r in results] == ["/docs/kyc.md"]

    @pytest.mark.asyncio
    async def test_equality_filter_is_case_insensitive(self, store: ChromaDBPassageStore) -> None:
        await store.upsert_batch(_seed())
        results = await store.search(
            [1.0, 0.0, 0.0], max_results=5, min_score=-1.0, filters={"department": "compliance"}
        )
        assert [r.passage.source_id for r in results] == ["/docs/kyc.md"]

    @pytest.mark.asyncio
    async def test_in_and_date_filters(self, store: ChromaDBPassageStore) -> None:
        await store.upsert_batch(_seed())
        results = await store.search(
            [1.0, 0.0, 0.0],
            max_results=5,
            min_score=-1.0,
            filters={
                "document_kind": {"$in": ["Policy", "Procedure"]},
                "effective_date": {"$gte": "2024-01-01"},
            },
        )
        assert {r.passage.id for r in results} == {"/docs/wire.md#0", "/docs/wire.md#1"}

    @pytest.mark.asyncio
    async def test_extra_field_filter(self, store: ChromaDBPassageStore) -> None:
        await store.upsert_batch(_seed())
        results = await store.search(
            [1.0, 0.0, 0.0], max_results=5, min_score=-1.0, filters={"status": "done"}
        )
        assert [r.passage.id for r in results] == ["/docs/wire.md#0"]

    @pytest.mark.asyncio
    async def test_unsupported_operator(self, store: ChromaDBPassageStore) -> None:
        with pytest.raises(ValueError):
            await store.search([1.0, 0.0, 0.0], filters={"title": {"$regex": "x"}})

    @pytest.mark.asyncio
    async def test_empty_store(self, store: ChromaDBPassageStore) -> None:
        assert await store.search([1.0, 0.0, 0.0], 5, 0.0) == []

    @pytest.mark.asyncio
    async def test_delete_by_source(self, store: ChromaDBPassageStore) -> None:
        await store.upsert_batch(_seed())

        assert await store.delete_by_source("/docs/wire.md") == 2
        assert await store.delete_by_source("/docs/missing.md") == 0
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_stats(self, store: ChromaDBPassageStore) -> None:
        await store.upsert_batch(_seed())
        stats = await store.get_stats()
        assert stats.total_passages == 3
        assert stats.total_sources == 2
        assert stats.passages_by_kind == {"Policy": 2, "Procedure": 1}

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path) -> None:
        path = str(tmp_path / "persist")
        first = ChromaDBPassageStore(persist_directory=path, collection_name="p")
        await first.upsert_batch(_seed())

        second = ChromaDBPassageStore(persist_directory=path, collection_name="p")
        assert await second.count() == 3


class TestFilterTranslation:
    def test_equality_and_in(self) -> None:
        where = ChromaDBPassageStore._translate_filters(
            {"department": "Treasury", "document_kind": {"$in": ["Policy"]}}
        )
        assert where == {
            "$and": [
                {"department__lc": "treasury"},
                {"document_kind__lc": {"$in": ["policy"]}},
            ]
        }

    def test_non_translatable_clauses_are_skipped(self) -> None:
        assert ChromaDBPassageStore._translate_filters(
            {"effective_date": {"$gte": "2024-01-01"}, "status": "Done"}
        ) is None
