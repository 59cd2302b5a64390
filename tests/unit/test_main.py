"""Unit tests for the component factories in ``bankdocs.main``."""

from __future__ import annotations

import httpx
import pytest

from bankdocs.config.settings import Settings
from bankdocs.main import build_components, build_loaders, build_passage_store
from bankdocs.pipeline.scheduler import PeriodicIngestionScheduler
from bankdocs.providers.loaders.confluence_loader import ConfluenceLoader
from bankdocs.providers.loaders.jira_loader import JiraLoader
from bankdocs.providers.loaders.local_file_loader import LocalFileLoader
from bankdocs.providers.loaders.web_page_loader import WebPageLoader
from bankdocs.providers.store.memory_store import InMemoryPassageStore
from bankdocs.utils.errors import ConfigurationError


def _settings(**overrides) -> Settings:  # noqa: ANN003
    return Settings(_env_file=None, **overrides)


class TestBuildPassageStore:
    def test_memory(self) -> None:
        store = build_passage_store(_settings(passage_store_backend="memory"))
        assert isinstance(store, InMemoryPassageStore)

    def test_chromadb(self, tmp_path) -> None:
        store = build_passage_store(
            _settings(
                passage_store_backend="ChromaDB",
                chromadb_persist_dir=str(tmp_path / "chroma"),
            )
        )
        assert store.get_provider_name() == "chromadb"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown passage store backend"):
            build_passage_store(_settings(passage_store_backend="redis"))


class TestBuildLoaders:
    def test_only_local_by_default(self) -> None:
        loaders = build_loaders(_settings(), httpx.AsyncClient())
        assert [type(loader) for loader in loaders] == [LocalFileLoader]

    def test_every_configured_source(self) -> None:
        loaders = build_loaders(
            _settings(
                jira_base_url="https://jira.bank.test",
                confluence_base_url="https://wiki.bank.test",
                web_urls=["https://intranet.bank.test/rates"],
            ),
            httpx.AsyncClient(),
        )
        assert [type(loader) for loader in loaders] == [
            LocalFileLoader,
            JiraLoader,
            ConfluenceLoader,
            WebPageLoader,
        ]
        assert [loader.name for loader in loaders] == ["local", "jira", "confluence", "web"]

    def test_no_sources(self) -> None:
        assert build_loaders(_settings(local_documents_enabled=False), httpx.AsyncClient()) == []


class TestBuildComponents:
    @pytest.mark.asyncio
    async def test_wiring(self) -> None:
        components = build_components(_settings(), config={"app": {"version": "1.2.3"}})
        try:
            assert components["version"] == "1.2.3"
            assert components["scheduler"] is None
            assert components["ingestion_service"].source_names == ["local"]
            assert isinstance(components["passage_store"], InMemoryPassageStore)
        finally:
            await components["http_client"].aclose()

    @pytest.mark.asyncio
    async def test_scheduler_when_enabled(self) -> None:
        components = build_components(
            _settings(ingestion_schedule_enabled=True, ingestion_interval_seconds=30),
            config={},
        )
        try:
            assert isinstance(components["scheduler"], PeriodicIngestionScheduler)
            assert components["version"] == "0.1.0"
        finally:
            await components["http_client"].aclose()
