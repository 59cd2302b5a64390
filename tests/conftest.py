"""Shared pytest fixtures for the bankdocs test suite."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from bankdocs.interfaces.embedding_provider import IEmbeddingProvider
from bankdocs.interfaces.llm_provider import ILLMProvider
from bankdocs.interfaces.source_loader import ISourceLoader
from bankdocs.models.documents import DocumentKind, RawDocument, SpanCompleteness
from bankdocs.models.passages import Passage, PassageMetadata, ScoredPassage, passage_id
from bankdocs.providers.store.memory_store import InMemoryPassageStore
from bankdocs.services.ingestion.chunker import TextChunker
from bankdocs.services.ingestion.ingestion_service import IngestionService
from bankdocs.services.ingestion.parser import DocumentParser
from bankdocs.utils.errors import RAGError

# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------

# Each vocabulary word is one dimension; a text's vector marks which of them
# it contains.  Texts sharing vocabulary words get high cosine similarity.
EMBEDDING_VOCABULARY = (
    "wire",
    "transfer",
    "threshold",
    "limit",
    "funds",
    "kyc",
    "customer",
    "loan",
    "mortgage",
    "interest",
    "sanctions",
    "fraud",
)

_WORD_RE = re.compile(r"[a-z]+")


def keyword_vector(text: str) -> list[float]:
    """Return the binary bag-of-words vector of *text* over the test vocabulary."""
    words = set(_WORD_RE.findall(text.lower()))
    return [1.0 if term in words else 0.0 for term in EMBEDDING_VOCABULARY]


class KeywordEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Any text containing ``fail_marker`` makes the whole call raise.
    """

    def __init__(self, fail_marker: str = "CORRUPTED") -> None:
        self.calls: list[list[str]] = []
        self.fail_marker = fail_marker

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if any(self.fail_marker in t for t in texts):
            raise RAGError("Embedding request rejected", provider_name="keyword-embedding")
        return [keyword_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return len(EMBEDDING_VOCABULARY)

    def get_provider_name(self) -> str:
        return "keyword-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Source loaders
# ---------------------------------------------------------------------------


class StaticLoader(ISourceLoader):
    """Loader yielding a fixed list of documents.

    ``fail_after`` makes iteration itself raise after that many documents.
    """

    def __init__(
        self,
        name: str,
        documents: list[RawDocument],
        available: bool = True,
        fail_after: int | None = None,
    ) -> None:
        self._name = name
        self._documents = documents
        self._available = available
        self._fail_after = fail_after
        self.load_calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def is_available(self) -> bool:
        return self._available

    async def load_documents(self) -> AsyncIterator[RawDocument]:
        self.load_calls += 1
        for index, document in enumerate(self._documents):
            if self._fail_after is not None and index >= self._fail_after:
                raise RuntimeError(f"{self._name} connection dropped")
            yield document


def make_raw(
    path: str, content: str, title: str = "", **metadata: Any
) -> RawDocument:
    """Build a RawDocument whose id and source path are *path*."""
    if title:
        metadata["title"] = title
    return RawDocument(id=path, content=content, source_path=path, metadata=metadata)


def make_passage(
    source_id: str = "/docs/wire.md",
    chunk_index: int = 0,
    content: str = "Wire transfer threshold and limit for funds.",
    embedding: list[float] | None = None,
    created_at: datetime | None = None,
    **metadata: Any,
) -> Passage:
    """Build a Passage with sensible defaults; metadata kwargs go to PassageMetadata."""
    metadata.setdefault("title", "Wire Transfer Policy")
    metadata.setdefault("source_ref", source_id)
    extra_kwargs = {}
    if created_at is not None:
        extra_kwargs["created_at"] = created_at
    return Passage(
        id=passage_id(source_id, chunk_index),
        source_id=source_id,
        chunk_index=chunk_index,
        content=content,
        embedding=embedding if embedding is not None else keyword_vector(content),
        metadata=PassageMetadata(**metadata),
        **extra_kwargs,
    )


def make_scored(passage: Passage, score: float) -> ScoredPassage:
    return ScoredPassage(passage=passage, score=score, vector_score=score)


WIRE_POLICY_TEXT = (
    "# Wire Transfer Policy\n\n"
    "Department: Treasury\n"
    "Effective Date: 2024-03-01\n"
    "Version: 2.1\n\n"
    "Outgoing wire transfer requests above the approval threshold of $50,000 "
    "require a second approver. The daily limit for funds released by wire "
    "is $1,000,000 per customer."
)

KYC_PROCEDURE_TEXT = (
    "# KYC Refresh Procedure\n\n"
    "Department: Compliance\n\n"
    "Customer due diligence files must be refreshed every two years. "
    "High-risk customer files are refreshed annually and screened for sanctions."
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def memory_store() -> InMemoryPassageStore:
    return InMemoryPassageStore()


@pytest.fixture
def passage_factory() -> Callable[..., Passage]:
    return make_passage


@pytest.fixture
def raw_factory() -> Callable[..., RawDocument]:
    return make_raw


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider that returns a short cited answer.

    Override with ``mock_llm_provider.complete.return_value = "..."`` or
    ``side_effect`` for specific tests.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.validate_credentials = AsyncMock(return_value=True)
    mock.complete = AsyncMock(
        return_value="Wire transfers above $50,000 need a second approver [1]."
    )
    return mock


@pytest.fixture
def wire_loader() -> StaticLoader:
    return StaticLoader(
        "local",
        [
            make_raw("/docs/wire.md", WIRE_POLICY_TEXT),
            make_raw("/docs/kyc.md", KYC_PROCEDURE_TEXT),
        ],
    )


@pytest.fixture
def make_ingestion_service(
    embedding_provider: KeywordEmbeddingProvider, memory_store: InMemoryPassageStore
) -> Callable[..., IngestionService]:
    """Factory building an IngestionService over the test store and embedder."""

    def _build(loaders: list[ISourceLoader], **kwargs: Any) -> IngestionService:
        kwargs.setdefault("chunk_size", 1000)
        kwargs.setdefault("chunk_overlap", 200)
        return IngestionService(
            loaders=loaders,
            parser=kwargs.pop("parser", DocumentParser()),
            chunker=TextChunker(kwargs["chunk_size"], kwargs["chunk_overlap"]),
            embedding_provider=kwargs.pop("embedding_provider", embedding_provider),
            passage_store=kwargs.pop("passage_store", memory_store),
            **kwargs,
        )

    return _build


@pytest.fixture
def sample_passages() -> list[Passage]:
    """Three passages across departments, kinds and dates."""
    return [
        make_passage(
            "/docs/wire.md",
            0,
            "Wire transfer threshold: funds above the limit need approval.",
            department="Treasury",
            document_kind=DocumentKind.POLICY,
            effective_date=date(2024, 3, 1),
            section_title="Approvals",
        ),
        make_passage(
            "/docs/kyc.md",
            0,
            "KYC refresh for every customer every two years.",
            title="KYC Refresh Procedure",
            department="Compliance",
            document_kind=DocumentKind.PROCEDURE,
            effective_date=date(2022, 6, 1),
        ),
        make_passage(
            "/docs/loans.md",
            0,
            "Mortgage loan interest rates are reviewed monthly.",
            title="Lending Rates",
            department="Finance",
            document_kind=DocumentKind.REFERENCE_DATA,
            completeness=SpanCompleteness.PARTIAL,
            created_at=datetime(2023, 1, 1, tzinfo=timezone.utc),  # noqa: UP017
        ),
    ]
