"""Unit tests for IngestionService - run gate, per-source outcomes and passage writes."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from bankdocs.models.documents import DocumentKind, RawDocument
from bankdocs.models.ingestion import RunStatus
from bankdocs.providers.loaders.local_file_loader import LocalFileLoader
from bankdocs.providers.store.memory_store import InMemoryPassageStore
from bankdocs.services.ingestion.ingestion_service import IngestionService
from bankdocs.services.ingestion.parser import DocumentParser
from bankdocs.utils.errors import IngestionBusyError, RunNotFoundError
from tests.conftest import (
    KYC_PROCEDURE_TEXT,
    WIRE_POLICY_TEXT,
    KeywordEmbeddingProvider,
    StaticLoader,
    make_raw,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class BlockingLoader(StaticLoader):
    """Loader that waits on an event before yielding anything."""

    def __init__(self, name: str, documents: list[RawDocument]) -> None:
        super().__init__(name, documents)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def load_documents(self):  # noqa: ANN201
        self.started.set()
        await self.release.wait()
        for document in self._documents:
            yield document


class ExplodingAvailabilityLoader(StaticLoader):
    async def is_available(self) -> bool:
        raise ConnectionError("DNS lookup failed")


class MalformedMarkupParser(DocumentParser):
    """Parser that rejects any document containing a MALFORMED marker."""

    def parse(self, raw_content, title="", extensions=None):  # noqa: ANN001, ANN201
        if "MALFORMED" in raw_content:
            raise ValueError("unbalanced table markup")
        return super().parse(raw_content, title=title, extensions=extensions)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestSuccessfulRun:
    @pytest.mark.asyncio
    async def test_all_documents_ingested(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
        memory_store: InMemoryPassageStore,
    ) -> None:
        service = make_ingestion_service([wire_loader])

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.COMPLETED
        assert run.total_processed == 2
        assert run.total_failed == 0
        assert run.completed_at is not None
        detail = run.per_source_detail["local"]
        assert detail.status is RunStatus.COMPLETED
        assert detail.processed == 2
        assert detail.passages == await memory_store.count()
        assert not service.is_running()

    @pytest.mark.asyncio
    async def test_passage_metadata(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
        memory_store: InMemoryPassageStore,
    ) -> None:
        service = make_ingestion_service([wire_loader])
        await service.trigger_ingestion()

        results = await memory_store.search(
            [1.0] * 12, max_results=10, min_score=-1.0, filters={"department": "Treasury"}
        )

        assert results
        passage = results[0].passage
        assert passage.id == "/docs/wire.md#0"
        assert passage.source_id == "/docs/wire.md"
        assert passage.metadata.title == "Wire Transfer Policy"
        assert passage.metadata.source_name == "local"
        assert passage.metadata.document_kind is DocumentKind.POLICY
        assert passage.metadata.version == "2.1"
        assert passage.content.startswith("[Section: Wire Transfer Policy]")

    @pytest.mark.asyncio
    async def test_reingestion_replaces_passages(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        memory_store: InMemoryPassageStore,
    ) -> None:
        long_text = "# Limits\n" + " ".join(
            f"Rule {i} sets the wire transfer limit for region {i}." for i in range(40)
        )
        first = StaticLoader("local", [make_raw("/docs/limits.md", long_text)])
        service = make_ingestion_service([first], chunk_size=300, chunk_overlap=50)
        await service.trigger_ingestion()
        before = await memory_store.count()
        assert before > 1

        second = StaticLoader("local", [make_raw("/docs/limits.md", "# Limits\nOne short rule.")])
        service = make_ingestion_service([second], chunk_size=300, chunk_overlap=50)
        await service.trigger_ingestion()

        assert await memory_store.count() == 1

    @pytest.mark.asyncio
    async def test_batches_respect_batch_size(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        embedding_provider: KeywordEmbeddingProvider,
    ) -> None:
        long_text = " ".join(f"Sentence {i} about wire limits." for i in range(60))
        loader = StaticLoader("local", [make_raw("/docs/long.md", long_text)])
        service = make_ingestion_service(
            [loader], chunk_size=200, chunk_overlap=20, batch_size=3, embed_concurrency=2
        )

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.COMPLETED
        assert len(embedding_provider.calls) > 1
        assert all(len(call) <= 3 for call in embedding_provider.calls)
        assert sum(len(call) for call in embedding_provider.calls) == run.per_source_detail[
            "local"
        ].passages


class TestPartialFailures:
    @pytest.mark.asyncio
    async def test_failing_document_is_counted_and_skipped(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        memory_store: InMemoryPassageStore,
    ) -> None:
        loader = StaticLoader(
            "local",
            [
                make_raw("/docs/1.md", WIRE_POLICY_TEXT),
                make_raw("/docs/2.md", "This file is CORRUPTED beyond repair."),
                make_raw("/docs/3.md", KYC_PROCEDURE_TEXT),
            ],
        )
        service = make_ingestion_service([loader])

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.PARTIALLY_COMPLETED
        assert run.total_processed == 2
        assert run.total_failed == 1
        detail = run.per_source_detail["local"]
        assert detail.status is RunStatus.PARTIALLY_COMPLETED
        assert len(detail.errors) == 1
        assert "/docs/2.md" in detail.errors[0]
        stats = await memory_store.get_stats()
        assert stats.total_sources == 2

    @pytest.mark.asyncio
    async def test_unavailable_source_fails_but_run_continues(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        down = StaticLoader("jira", [], available=False)
        service = make_ingestion_service([down, wire_loader])

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.PARTIALLY_COMPLETED
        assert run.per_source_detail["jira"].status is RunStatus.FAILED
        assert run.per_source_detail["local"].status is RunStatus.COMPLETED
        assert down.load_calls == 0
        assert any("jira" in e for e in run.errors)

    @pytest.mark.asyncio
    async def test_availability_exception_is_a_failed_source(
        self,
        make_ingestion_service: Callable[..., IngestionService],
    ) -> None:
        loader = ExplodingAvailabilityLoader("web", [])
        service = make_ingestion_service([loader])

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.FAILED
        assert "DNS lookup failed" in run.per_source_detail["web"].errors[0]

    @pytest.mark.asyncio
    async def test_loader_crash_marks_source_failed(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        flaky = StaticLoader(
            "confluence",
            [make_raw("/c/1", WIRE_POLICY_TEXT), make_raw("/c/2", KYC_PROCEDURE_TEXT)],
            fail_after=1,
        )
        service = make_ingestion_service([flaky, wire_loader])

        run = await service.trigger_ingestion()

        detail = run.per_source_detail["confluence"]
        assert detail.status is RunStatus.FAILED
        assert detail.processed == 1
        assert run.per_source_detail["local"].status is RunStatus.COMPLETED
        assert run.status is RunStatus.PARTIALLY_COMPLETED

    @pytest.mark.asyncio
    async def test_all_documents_failing_fails_source(
        self,
        make_ingestion_service: Callable[..., IngestionService],
    ) -> None:
        loader = StaticLoader("local", [make_raw("/x", "CORRUPTED"), make_raw("/y", "CORRUPTED")])
        service = make_ingestion_service([loader])

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.FAILED
        assert run.total_failed == 2

    @pytest.mark.asyncio
    async def test_error_list_is_capped(
        self,
        make_ingestion_service: Callable[..., IngestionService],
    ) -> None:
        docs = [make_raw(f"/bad/{i}", "CORRUPTED") for i in range(5)]
        service = make_ingestion_service(
            [StaticLoader("local", docs)], max_errors_per_source=2
        )

        run = await service.trigger_ingestion()

        assert run.total_failed == 5
        assert len(run.per_source_detail["local"].errors) == 2

    @pytest.mark.asyncio
    async def test_parse_failure_is_isolated(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        memory_store: InMemoryPassageStore,
    ) -> None:
        loader = StaticLoader(
            "local",
            [
                make_raw("/docs/1.md", WIRE_POLICY_TEXT),
                make_raw("/docs/2.md", "<table>MALFORMED"),
                make_raw("/docs/3.md", KYC_PROCEDURE_TEXT),
            ],
        )
        service = make_ingestion_service([loader], parser=MalformedMarkupParser())

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.PARTIALLY_COMPLETED
        assert (run.total_processed, run.total_failed) == (2, 1)
        errors = service.get_run_status(run.id).per_source_detail["local"].errors
        assert errors == ["/docs/2.md: unbalanced table markup"]
        assert (await memory_store.get_stats()).total_sources == 2

    @pytest.mark.asyncio
    async def test_unreadable_file_counts_as_failed(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        tmp_path,
    ) -> None:
        (tmp_path / "good.md").write_text(WIRE_POLICY_TEXT, encoding="utf-8")
        (tmp_path / "broken.pdf").write_bytes(b"this is not a pdf document")
        service = make_ingestion_service([LocalFileLoader(str(tmp_path))])

        run = await service.trigger_ingestion()

        assert run.status is RunStatus.PARTIALLY_COMPLETED
        assert (run.total_processed, run.total_failed) == (1, 1)
        detail = run.per_source_detail["local"]
        assert detail.status is RunStatus.PARTIALLY_COMPLETED
        assert len(detail.errors) == 1
        assert "broken.pdf" in detail.errors[0]


class TestSourceFilter:
    @pytest.mark.asyncio
    async def test_filter_selects_sources(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        other = StaticLoader("web", [make_raw("https://x", "Web text")])
        service = make_ingestion_service([wire_loader, other])

        run = await service.trigger_ingestion(source_filter=["WEB"])

        assert list(run.per_source_detail) == ["web"]
        assert wire_loader.load_calls == 0

    @pytest.mark.asyncio
    async def test_unmatched_filter_fails_run(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        service = make_ingestion_service([wire_loader])

        run = await service.trigger_ingestion(source_filter=["sharepoint"])

        assert run.status is RunStatus.FAILED
        assert "Unknown source 'sharepoint'" in run.errors
        assert run.per_source_detail == {}


class TestRunGate:
    @pytest.mark.asyncio
    async def test_second_trigger_is_busy(
        self,
        make_ingestion_service: Callable[..., IngestionService],
    ) -> None:
        loader = BlockingLoader("local", [make_raw("/a", WIRE_POLICY_TEXT)])
        service = make_ingestion_service([loader])

        first = await service.trigger_ingestion(wait=False)
        await loader.started.wait()
        assert first.status is RunStatus.RUNNING
        assert service.is_running()

        with pytest.raises(IngestionBusyError):
            await service.trigger_ingestion(busy_timeout=0)
        with pytest.raises(IngestionBusyError):
            await service.trigger_ingestion(busy_timeout=0.05)

        loader.release.set()
        final = await service.wait_for_run(first.id)
        assert final.status is RunStatus.COMPLETED
        assert not service.is_running()

        again = await service.trigger_ingestion(busy_timeout=0)
        assert again.status is RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_waiting_trigger_runs_after_first(
        self,
        make_ingestion_service: Callable[..., IngestionService],
    ) -> None:
        loader = BlockingLoader("local", [make_raw("/a", WIRE_POLICY_TEXT)])
        service = make_ingestion_service([loader])

        first = await service.trigger_ingestion(wait=False)
        await loader.started.wait()
        second_task = asyncio.create_task(service.trigger_ingestion(busy_timeout=5))
        await asyncio.sleep(0.01)
        loader.release.set()

        second = await second_task
        assert second.id != first.id
        assert second.status is RunStatus.COMPLETED
        assert service.get_run_status(first.id).status is RunStatus.COMPLETED


class TestRunTracking:
    @pytest.mark.asyncio
    async def test_status_snapshots_are_copies(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        service = make_ingestion_service([wire_loader])
        run = await service.trigger_ingestion()

        snapshot = service.get_run_status(run.id)
        snapshot.errors.append("tampered")

        assert service.get_run_status(run.id).errors == []

    @pytest.mark.asyncio
    async def test_list_runs_newest_first(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        service = make_ingestion_service([wire_loader])
        first = await service.trigger_ingestion()
        second = await service.trigger_ingestion()

        assert [r.id for r in service.list_runs()] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_run_history_is_bounded(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        service = make_ingestion_service([wire_loader], max_run_history=2)
        runs = [await service.trigger_ingestion() for _ in range(3)]

        assert [r.id for r in service.list_runs()] == [runs[2].id, runs[1].id]
        with pytest.raises(RunNotFoundError):
            service.get_run_status(runs[0].id)
        assert service._cancel_events == {}

    def test_unknown_run(self, make_ingestion_service: Callable[..., IngestionService]) -> None:
        service = make_ingestion_service([])
        with pytest.raises(RunNotFoundError):
            service.get_run_status("nope")
        with pytest.raises(RunNotFoundError):
            service.cancel_run("nope")

    @pytest.mark.asyncio
    async def test_cancel_run(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        memory_store: InMemoryPassageStore,
    ) -> None:
        loader = BlockingLoader("local", [make_raw("/a", WIRE_POLICY_TEXT)])
        service = make_ingestion_service([loader])

        run = await service.trigger_ingestion(wait=False)
        await loader.started.wait()
        service.cancel_run(run.id)
        loader.release.set()

        final = await service.wait_for_run(run.id)
        assert final.status is RunStatus.CANCELLED
        assert final.per_source_detail["local"].status is RunStatus.CANCELLED
        assert await memory_store.count() == 0
        assert not service.is_running()

    @pytest.mark.asyncio
    async def test_cancelling_finished_run_is_noop(
        self,
        make_ingestion_service: Callable[..., IngestionService],
        wire_loader: StaticLoader,
    ) -> None:
        service = make_ingestion_service([wire_loader])
        run = await service.trigger_ingestion()

        assert service.cancel_run(run.id).status is RunStatus.COMPLETED

    def test_invalid_parameters(
        self, make_ingestion_service: Callable[..., IngestionService]
    ) -> None:
        with pytest.raises(ValueError):
            make_ingestion_service([], batch_size=0)
        with pytest.raises(ValueError):
            make_ingestion_service([], embed_concurrency=0)
        with pytest.raises(ValueError):
            make_ingestion_service([], max_run_history=0)
