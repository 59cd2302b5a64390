"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **load -> parse -> chunk -> embed -> store**.

The :class:`IngestionService` coordinates five collaborators (source
loaders, parser, chunker, embedding provider, passage store) without any of
them knowing about each other.  For every configured source it:

    1. ISourceLoader -- checks availability, then yields raw documents lazily
    2. DocumentParser -- normalizes text and extracts banking metadata
    3. TextChunker -- splits the text into section-labelled spans
    4. IEmbeddingProvider -- embeds span batches with bounded concurrency
    5. IPassageStore -- replaces the document's passages

Only one run executes at a time.  The run gate is a ``Semaphore(1)`` owned
by the service instance; a trigger that cannot acquire it within the busy
timeout raises :class:`IngestionBusyError` instead of queueing.

Failures are isolated at the narrowest level possible: a failing document
is counted and skipped, a failing or unavailable source is marked
``Failed`` and the run moves on to the next source.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from bankdocs.models.documents import ParsedDocument, RawDocument, TextSpan
from bankdocs.models.ingestion import IngestionRun, RunStatus, SourceDetail
from bankdocs.models.passages import Passage, PassageMetadata, passage_id
from bankdocs.services.ingestion.chunker import TextChunker
from bankdocs.services.ingestion.parser import DocumentParser
from bankdocs.utils.concurrency import throttled_gather
from bankdocs.utils.errors import (
    IngestionBusyError,
    RAGError,
    RunNotFoundError,
    SourceLoadError,
)

if TYPE_CHECKING:
    from bankdocs.interfaces.embedding_provider import IEmbeddingProvider
    from bankdocs.interfaces.passage_store import IPassageStore
    from bankdocs.interfaces.source_loader import ISourceLoader

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Runs ingestion over the configured source loaders, one run at a time.

    Parameters
    ----------
    loaders:
        Source loaders in the order they should be processed.
    parser:
        Turns raw content into normalized text plus metadata.
    chunker:
        Splits parsed text into spans.
    embedding_provider:
        Embeds span batches.
    passage_store:
        Persists the embedded passages.
    chunk_size:
        ``max_chunk_chars`` passed to the chunker.
    chunk_overlap:
        ``overlap_chars`` passed to the chunker.
    batch_size:
        Number of spans embedded per provider call.
    embed_concurrency:
        Maximum number of embedding batches in flight for one document.
    busy_timeout:
        Seconds to wait for the run gate before raising
        :class:`IngestionBusyError`.
    max_errors_per_source:
        How many error messages are kept per source.
    max_run_history:
        How many finished runs stay queryable; older ones are forgotten.
    """

    def __init__(
        self,
        loaders: list[ISourceLoader],
        parser: DocumentParser,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        passage_store: IPassageStore,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        batch_size: int = 50,
        embed_concurrency: int = 4,
        busy_timeout: float = 60.0,
        max_errors_per_source: int = 10,
        max_run_history: int = 100,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if embed_concurrency <= 0:
            raise ValueError("embed_concurrency must be positive")
        if max_run_history <= 0:
            raise ValueError("max_run_history must be positive")

        self._loaders = list(loaders)
        self._parser = parser
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._store = passage_store
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._batch_size = batch_size
        self._embed_semaphore = asyncio.Semaphore(embed_concurrency)
        self._busy_timeout = busy_timeout
        self._max_errors = max_errors_per_source
        self._max_run_history = max_run_history

        self._gate = asyncio.Semaphore(1)
        self._runs: dict[str, IngestionRun] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._active_run_id: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def source_names(self) -> list[str]:
        return [loader.name for loader in self._loaders]

    @property
    def loaders(self) -> list[ISourceLoader]:
        return list(self._loaders)

    def is_running(self) -> bool:
        return self._active_run_id is not None

    async def trigger_ingestion(
        self,
        source_filter: list[str] | None = None,
        wait: bool = True,
        cancel_event: asyncio.Event | None = None,
        busy_timeout: float | None = None,
    ) -> IngestionRun:
        """Start an ingestion run.

        Parameters
        ----------
        source_filter:
            Names of the sources to ingest; ``None`` means all of them.
        wait:
            When ``True`` return the terminal run; otherwise return the
            ``Running`` snapshot immediately and let the run continue in the
            background.
        cancel_event:
            Optional externally owned event; setting it cancels the run.
        busy_timeout:
            Overrides the configured wait for the run gate; ``0`` fails
            immediately when a run is in progress.

        Returns
        -------
        IngestionRun
            A snapshot of the run.

        Raises
        ------
        IngestionBusyError
            If another run still holds the gate after ``busy_timeout``.
        """
        timeout = self._busy_timeout if busy_timeout is None else busy_timeout
        await self._acquire_gate(timeout)

        run = IngestionRun(
            id=uuid.uuid4().hex,
            source_filter=list(source_filter) if source_filter is not None else None,
        )
        event = cancel_event or asyncio.Event()
        self._runs[run.id] = run
        self._cancel_events[run.id] = event
        self._active_run_id = run.id

        task = asyncio.create_task(self._execute(run, event), name=f"ingestion-{run.id}")
        self._tasks[run.id] = task
        task.add_done_callback(lambda _t, r=run: self._on_task_done(r))

        if not wait:
            return self._snapshot(run)

        await task
        return self._snapshot(run)

    def get_run_status(self, run_id: str) -> IngestionRun:
        """Return a snapshot of run *run_id*.

        Raises
        ------
        RunNotFoundError
            If no run with that id exists.
        """
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Ingestion run '{run_id}' not found")
        return self._snapshot(run)

    def list_runs(self) -> list[IngestionRun]:
        """Return snapshots of every known run, newest first."""
        return [self._snapshot(r) for r in reversed(list(self._runs.values()))]

    def cancel_run(self, run_id: str) -> IngestionRun:
        """Request cooperative cancellation of a run.

        Cancelling a run that already finished is a no-op.
        """
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Ingestion run '{run_id}' not found")
        if not run.status.is_terminal:
            logger.info("ingestion_cancel_requested", run_id=run_id)
            self._cancel_events[run_id].set()
        return self._snapshot(run)

    async def wait_for_run(self, run_id: str) -> IngestionRun:
        """Await the background task of *run_id* and return the final snapshot."""
        if run_id not in self._runs:
            raise RunNotFoundError(f"Ingestion run '{run_id}' not found")
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._snapshot(self._runs[run_id])

    # ------------------------------------------------------------------
    # Run execution
    # ------------------------------------------------------------------

    async def _acquire_gate(self, timeout: float) -> None:
        if timeout <= 0 and self._gate.locked():
            acquired = False
        elif timeout <= 0:
            await self._gate.acquire()
            acquired = True
        else:
            try:
                await asyncio.wait_for(self._gate.acquire(), timeout=timeout)
                acquired = True
            except asyncio.TimeoutError:
                acquired = False

        if not acquired:
            logger.warning(
                "ingestion_busy", active_run_id=self._active_run_id, waited_s=max(timeout, 0.0)
            )
            raise IngestionBusyError(
                f"Ingestion run {self._active_run_id} is still in progress"
            )

    async def _execute(self, run: IngestionRun, cancel_event: asyncio.Event) -> None:
        log = logger.bind(run_id=run.id)
        log.info("ingestion_run_started", source_filter=run.source_filter)

        try:
            loaders = self._resolve_loaders(run)
            if not loaders:
                run.status = RunStatus.FAILED
                run.errors.append("No configured source matches the requested filter")
                log.warning("ingestion_no_sources", source_filter=run.source_filter)
                return

            for loader in loaders:
                if cancel_event.is_set():
                    break
                detail = SourceDetail()
                run.per_source_detail[loader.name] = detail
                await self._ingest_source(run, loader, detail, cancel_event)

            if cancel_event.is_set():
                self._mark_cancelled(run)
            else:
                run.status = self._final_status(run)
        except asyncio.CancelledError:
            self._mark_cancelled(run)
            raise
        except Exception as exc:
            log.exception("ingestion_run_crashed", error=str(exc))
            run.errors.append(f"Ingestion run crashed: {exc}")
            run.status = RunStatus.FAILED
        finally:
            run.completed_at = datetime.now(tz=timezone.utc)  # noqa: UP017
            log.info(
                "ingestion_run_finished",
                status=run.status.value,
                total_processed=run.total_processed,
                total_failed=run.total_failed,
                duration_s=round((run.completed_at - run.started_at).total_seconds(), 3),
            )
            self._release(run)

    def _resolve_loaders(self, run: IngestionRun) -> list[ISourceLoader]:
        if run.source_filter is None:
            return list(self._loaders)

        known = {loader.name.lower() for loader in self._loaders}
        wanted = set()
        for name in run.source_filter:
            key = name.strip().lower()
            if key in known:
                wanted.add(key)
            else:
                run.errors.append(f"Unknown source '{name}'")
        return [loader for loader in self._loaders if loader.name.lower() in wanted]

    async def _ingest_source(
        self,
        run: IngestionRun,
        loader: ISourceLoader,
        detail: SourceDetail,
        cancel_event: asyncio.Event,
    ) -> None:
        log = logger.bind(run_id=run.id, source=loader.name)

        try:
            available = await loader.is_available()
            reason = "source is not configured or not reachable"
        except Exception as exc:
            available = False
            reason = str(exc)
        if not available:
            detail.status = RunStatus.FAILED
            self._record_error(run, detail, f"Source '{loader.name}' unavailable: {reason}")
            log.warning("source_unavailable", reason=reason)
            return

        log.info("source_ingestion_started")
        try:
            async for raw in loader.load_documents():
                if cancel_event.is_set():
                    detail.status = RunStatus.CANCELLED
                    return
                try:
                    written = await self._ingest_document(loader.name, raw, cancel_event)
                except Exception as exc:
                    detail.failed += 1
                    run.total_failed += 1
                    self._record_error(run, detail, f"{raw.source_path}: {exc}", run_level=False)
                    log.warning("document_failed", document=raw.source_path, error=str(exc))
                    continue
                if written is None:
                    detail.status = RunStatus.CANCELLED
                    return
                detail.processed += 1
                detail.passages += written
                run.total_processed += 1
        except Exception as exc:
            detail.status = RunStatus.FAILED
            self._record_error(run, detail, f"Source '{loader.name}' failed: {exc}")
            log.error("source_load_failed", error=str(exc), processed=detail.processed)
            return

        if detail.failed and not detail.processed:
            detail.status = RunStatus.FAILED
        elif detail.failed:
            detail.status = RunStatus.PARTIALLY_COMPLETED
        else:
            detail.status = RunStatus.COMPLETED
        log.info(
            "source_ingestion_finished",
            status=detail.status.value,
            processed=detail.processed,
            failed=detail.failed,
            passages=detail.passages,
        )

    async def _ingest_document(
        self, source_name: str, raw: RawDocument, cancel_event: asyncio.Event
    ) -> int | None:
        """Parse, chunk, embed and store one document.

        Returns the number of passages written, or ``None`` if the run was
        cancelled before the document was stored.
        """
        if raw.load_error:
            raise SourceLoadError(raw.load_error, provider_name=source_name)

        parsed = self._parser.parse(
            raw.content,
            title=str(raw.metadata.get("title", "")),
            extensions=raw.metadata,
        )
        spans = self._chunker.chunk(
            parsed.content,
            self._chunk_size,
            self._chunk_overlap,
            title=parsed.metadata.title,
        )

        batches = [
            spans[i : i + self._batch_size] for i in range(0, len(spans), self._batch_size)
        ]
        vectors_per_batch = await throttled_gather(
            [self._embed_batch(batch, cancel_event) for batch in batches],
            self._embed_semaphore,
        )
        if cancel_event.is_set() or any(v is None for v in vectors_per_batch):
            return None

        source_id = raw.source_path
        removed = await self._store.delete_by_source(source_id)

        written = 0
        index = 0
        for batch, vectors in zip(batches, vectors_per_batch, strict=True):
            passages = []
            for span, vector in zip(batch, vectors, strict=True):
                passages.append(self._build_passage(source_name, raw, parsed, span, index, vector))
                index += 1
            written += await self._store.upsert_batch(passages)

        logger.debug(
            "document_ingested",
            document=source_id,
            spans=len(spans),
            batches=len(batches),
            replaced=removed,
            written=written,
        )
        return written

    async def _embed_batch(
        self, batch: list[TextSpan], cancel_event: asyncio.Event
    ) -> list[list[float]] | None:
        if cancel_event.is_set():
            return None
        vectors = await self._embedding_provider.embed([span.content for span in batch])
        if len(vectors) != len(batch):
            raise RAGError(
                f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts",
                provider_name=self._embedding_provider.get_provider_name(),
            )
        return vectors

    @staticmethod
    def _build_passage(
        source_name: str,
        raw: RawDocument,
        parsed: ParsedDocument,
        span: TextSpan,
        index: int,
        vector: list[float],
    ) -> Passage:
        meta = parsed.metadata
        source_id = raw.source_path
        return Passage(
            id=passage_id(source_id, index),
            source_id=source_id,
            chunk_index=index,
            content=span.content,
            embedding=list(vector),
            metadata=PassageMetadata(
                title=meta.title,
                section_title=span.section_title,
                source_ref=source_id,
                source_name=source_name,
                department=meta.department,
                document_kind=meta.document_kind,
                effective_date=meta.effective_date,
                version=meta.version,
                completeness=span.completeness,
                start_offset=span.start_offset,
                end_offset=span.end_offset,
                extra=dict(meta.extensions),
            ),
        )

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _record_error(
        self, run: IngestionRun, detail: SourceDetail, message: str, run_level: bool = True
    ) -> None:
        if len(detail.errors) < self._max_errors:
            detail.errors.append(message)
        if run_level:
            run.errors.append(message)

    @staticmethod
    def _final_status(run: IngestionRun) -> RunStatus:
        statuses = [d.status for d in run.per_source_detail.values()]
        if not statuses:
            return RunStatus.FAILED
        if all(s is RunStatus.COMPLETED for s in statuses):
            return RunStatus.COMPLETED
        if all(s is RunStatus.FAILED for s in statuses):
            return RunStatus.FAILED
        return RunStatus.PARTIALLY_COMPLETED

    @staticmethod
    def _mark_cancelled(run: IngestionRun) -> None:
        for detail in run.per_source_detail.values():
            if detail.status is RunStatus.RUNNING:
                detail.status = RunStatus.CANCELLED
        run.status = RunStatus.CANCELLED

    def _on_task_done(self, run: IngestionRun) -> None:
        # Also reached when the task was cancelled before its first step.
        self._tasks.pop(run.id, None)
        self._release(run)
        self._cancel_events.pop(run.id, None)
        self._prune_history()

    def _prune_history(self) -> None:
        finished = [rid for rid, r in self._runs.items() if r.status.is_terminal]
        for run_id in finished[: max(0, len(self._runs) - self._max_run_history)]:
            del self._runs[run_id]

    def _release(self, run: IngestionRun) -> None:
        """Finalize *run* and free the gate; safe to call more than once."""
        if not run.status.is_terminal:
            self._mark_cancelled(run)
            run.completed_at = datetime.now(tz=timezone.utc)  # noqa: UP017
        if self._active_run_id != run.id:
            return
        self._active_run_id = None
        self._gate.release()

    @staticmethod
    def _snapshot(run: IngestionRun) -> IngestionRun:
        return run.model_copy(deep=True)
