"""bankdocs FastAPI application entry point.

Wires together all providers, services and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and starts the periodic ingestion scheduler when it is
enabled.

``build_components`` is also used by the CLI so both surfaces run the same
object graph.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from bankdocs.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from bankdocs.api.routes import router as api_router
from bankdocs.config.loader import load_config
from bankdocs.config.settings import Settings
from bankdocs.interfaces.passage_store import IPassageStore
from bankdocs.interfaces.source_loader import ISourceLoader
from bankdocs.pipeline.scheduler import PeriodicIngestionScheduler
from bankdocs.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from bankdocs.providers.llm.ollama_provider import OllamaLLMProvider
from bankdocs.providers.loaders.confluence_loader import ConfluenceLoader
from bankdocs.providers.loaders.jira_loader import JiraLoader
from bankdocs.providers.loaders.local_file_loader import LocalFileLoader
from bankdocs.providers.loaders.web_page_loader import WebPageLoader
from bankdocs.providers.store.memory_store import InMemoryPassageStore
from bankdocs.services.ingestion.chunker import TextChunker
from bankdocs.services.ingestion.ingestion_service import IngestionService
from bankdocs.services.ingestion.parser import DocumentParser
from bankdocs.services.retrieval.answer_service import AnswerService
from bankdocs.services.retrieval.prompt_builder import PromptBuilder
from bankdocs.services.retrieval.query_enhancer import QueryEnhancer
from bankdocs.services.retrieval.reranker import Reranker
from bankdocs.utils.errors import ConfigurationError
from bankdocs.utils.logging import configure_logging, get_logger

_DEFAULT_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component factories
# ---------------------------------------------------------------------------


def build_passage_store(app_settings: Settings) -> IPassageStore:
    """Return the passage store selected by ``PASSAGE_STORE_BACKEND``."""
    backend = app_settings.passage_store_backend.strip().lower()
    if backend == "memory":
        return InMemoryPassageStore()
    if backend == "chromadb":
        # Deferred: chromadb is slow to import and only needed for this backend.
        from bankdocs.providers.store.chromadb_store import ChromaDBPassageStore

        return ChromaDBPassageStore(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
        )
    raise ConfigurationError(
        f"Unknown passage store backend '{app_settings.passage_store_backend}'"
        " (expected 'memory' or 'chromadb')"
    )


def build_loaders(app_settings: Settings, http_client: httpx.AsyncClient) -> list[ISourceLoader]:
    """Instantiate a loader for every source that has enough configuration."""
    configured = set(app_settings.get_configured_sources())
    loaders: list[ISourceLoader] = []
    if "local" in configured:
        loaders.append(LocalFileLoader(root_path=app_settings.local_documents_path))
    if "jira" in configured:
        loaders.append(
            JiraLoader(
                http_client=http_client,
                base_url=app_settings.jira_base_url,
                username=app_settings.jira_username,
                api_token=app_settings.jira_api_token,
                jql=app_settings.jira_jql,
            )
        )
    if "confluence" in configured:
        loaders.append(
            ConfluenceLoader(
                http_client=http_client,
                base_url=app_settings.confluence_base_url,
                username=app_settings.confluence_username,
                api_token=app_settings.confluence_api_token,
                space_key=app_settings.confluence_space_key,
            )
        )
    if "web" in configured:
        loaders.append(
            WebPageLoader(
                http_client=http_client,
                urls=app_settings.web_urls,
                user_agent=app_settings.web_user_agent,
            )
        )
    return loaders


def build_components(
    app_settings: Settings, config: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components to be stored on ``app.state``
    (or used directly by the CLI).
    """
    config = config if config is not None else load_config(app_settings.config_path, app_settings)

    http_client = httpx.AsyncClient(timeout=app_settings.http_timeout, follow_redirects=True)
    embedding_provider = OllamaEmbeddingProvider(settings=app_settings)
    llm_provider = OllamaLLMProvider(settings=app_settings)
    passage_store = build_passage_store(app_settings)
    loaders = build_loaders(app_settings, http_client)

    ingestion_service = IngestionService(
        loaders=loaders,
        parser=DocumentParser(),
        chunker=TextChunker(app_settings.chunk_size, app_settings.chunk_overlap),
        embedding_provider=embedding_provider,
        passage_store=passage_store,
        chunk_size=app_settings.chunk_size,
        chunk_overlap=app_settings.chunk_overlap,
        batch_size=app_settings.ingestion_batch_size,
        embed_concurrency=app_settings.embed_concurrency,
        busy_timeout=app_settings.ingestion_busy_timeout,
        max_errors_per_source=app_settings.max_errors_per_source,
        max_run_history=app_settings.ingestion_run_history,
    )
    answer_service = AnswerService(
        embedding_provider=embedding_provider,
        passage_store=passage_store,
        llm_provider=llm_provider,
        query_enhancer=QueryEnhancer.from_config(config),
        reranker=Reranker(
            vector_weight=app_settings.rerank_vector_weight,
            keyword_weight=app_settings.rerank_keyword_weight,
            title_bonus=app_settings.rerank_title_bonus,
        ),
        prompt_builder=PromptBuilder(app_settings.prompt_max_context_chars),
        max_results=app_settings.retrieval_max_results,
        min_score=app_settings.retrieval_min_score,
        rerank_enabled=app_settings.rerank_enabled,
        temperature=app_settings.llm_temperature,
        max_tokens=app_settings.llm_max_tokens,
    )
    scheduler = (
        PeriodicIngestionScheduler(
            ingestion_service, interval_seconds=app_settings.ingestion_interval_seconds
        )
        if app_settings.ingestion_schedule_enabled
        else None
    )

    return {
        "settings": app_settings,
        "version": str((config.get("app") or {}).get("version", _DEFAULT_VERSION)),
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "llm_provider": llm_provider,
        "passage_store": passage_store,
        "loaders": loaders,
        "ingestion_service": ingestion_service,
        "answer_service": answer_service,
        "scheduler": scheduler,
    }


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    app_settings:
        Settings to build components from; defaults to the module settings.
    components:
        Pre-built components (tests inject fakes here); when omitted they
        are built on startup.
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        built = components if components is not None else build_components(app_settings)
        for key, value in built.items():
            setattr(application.state, key, value)
        application.state.version = built.get("version", _DEFAULT_VERSION)

        scheduler: PeriodicIngestionScheduler | None = built.get("scheduler")
        if scheduler is not None:
            scheduler.start()

        _logger.info(
            "app_startup",
            version=application.state.version,
            environment=app_settings.app_env,
            store=built["passage_store"].get_provider_name(),
            sources=built["ingestion_service"].source_names,
            scheduler=scheduler is not None,
        )

        yield

        if scheduler is not None:
            await scheduler.stop()
        http_client: httpx.AsyncClient | None = built.get("http_client")
        if http_client is not None:
            await http_client.aclose()
        _logger.info("app_shutdown")

    application = FastAPI(
        title="bankdocs API",
        version=_DEFAULT_VERSION,
        description=(
            "Ingest banking reference documents from files, Jira, Confluence "
            "and web pages, and answer questions with cited passages."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "bankdocs.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
