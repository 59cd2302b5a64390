"""Retrieval and answer orchestration.

Pipeline per question: **enhance -> embed -> search -> rerank -> prompt ->
generate -> cite**.

:class:`AnswerService` is stateless between calls.  Every failure from the
embedding provider, the passage store or the generation model propagates
to the caller unchanged; there is no fallback answer.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from bankdocs.models.answers import AnswerSource, QueryAnswer
from bankdocs.services.retrieval.prompt_builder import (
    SYSTEM_PROMPT,
    PromptBuilder,
    ensure_sources_section,
)
from bankdocs.services.retrieval.query_enhancer import QueryEnhancer
from bankdocs.services.retrieval.reranker import Reranker

if TYPE_CHECKING:
    from bankdocs.interfaces.embedding_provider import IEmbeddingProvider
    from bankdocs.interfaces.llm_provider import ILLMProvider
    from bankdocs.interfaces.passage_store import IPassageStore

logger = structlog.get_logger(logger_name=__name__)


class AnswerService:
    """Answers natural-language questions from the passage store.

    Parameters
    ----------
    embedding_provider:
        Embeds the enhanced query.
    passage_store:
        Searched for candidate passages.
    llm_provider:
        Generates the answer from the assembled prompt.
    query_enhancer, reranker, prompt_builder:
        Optional overrides of the default components.
    max_results, min_score:
        Search defaults used when :meth:`ask` is not given explicit values.
    rerank_enabled:
        When ``False`` results keep their cosine order.
    temperature, max_tokens:
        Generation parameters.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        passage_store: IPassageStore,
        llm_provider: ILLMProvider,
        query_enhancer: QueryEnhancer | None = None,
        reranker: Reranker | None = None,
        prompt_builder: PromptBuilder | None = None,
        max_results: int = 5,
        min_score: float = 0.7,
        rerank_enabled: bool = True,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._store = passage_store
        self._llm = llm_provider
        self._enhancer = query_enhancer or QueryEnhancer()
        self._reranker = reranker or Reranker()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._max_results = max_results
        self._min_score = min_score
        self._rerank_enabled = rerank_enabled
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def ask(
        self,
        query: str,
        filters: dict[str, Any] | None = None,
        max_results: int | None = None,
        min_score: float | None = None,
    ) -> QueryAnswer:
        """Answer *query* with citations to the passages used.

        Raises
        ------
        ValueError
            If *query* is empty or whitespace.
        """
        if not query or not query.strip():
            raise ValueError("Query must not be empty")

        start = time.perf_counter()
        limit = self._max_results if max_results is None else max_results
        threshold = self._min_score if min_score is None else min_score
        enhanced = self._enhancer.enhance(query)
        log = logger.bind(query_chars=len(query))

        try:
            vector = await self._embedding_provider.embed_single(enhanced)
            results = await self._store.search(vector, limit, threshold, filters)
            if self._rerank_enabled and results:
                results = self._reranker.rerank(query, results)
            user_prompt, used = self._prompt_builder.build_user_prompt(query, results)
            raw_answer = await self._llm.complete(
                SYSTEM_PROMPT,
                user_prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            log.error("answer_failed", error=str(exc), error_type=type(exc).__name__)
            raise

        answer_text = ensure_sources_section(raw_answer, used)
        latency_ms = (time.perf_counter() - start) * 1000.0
        sources = [
            AnswerSource(
                passage_id=r.passage.id,
                title=r.passage.metadata.title,
                section_title=r.passage.metadata.section_title,
                source_ref=r.passage.metadata.source_ref,
                score=r.score,
            )
            for r in used
        ]
        log.info(
            "answer_generated",
            candidates=len(results),
            cited=len(sources),
            top_score=sources[0].score if sources else 0.0,
            latency_ms=round(latency_ms, 1),
        )
        return QueryAnswer(
            query=query,
            enhanced_query=enhanced,
            answer_text=answer_text,
            sources=sources,
            latency_ms=latency_ms,
        )
