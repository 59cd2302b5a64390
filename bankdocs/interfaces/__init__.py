"""Public interface definitions for every external collaborator.

Business logic (ingestion and answer orchestration) talks only to these
abstract base classes; concrete adapters live in ``bankdocs/providers/`` and
are wired together in ``bankdocs/main.py``.

    Interface            →  Concrete implementations
    ─────────────────────────────────────────────────────────
    ISourceLoader        →  LocalFileLoader, JiraLoader,
                            ConfluenceLoader, WebPageLoader
    IEmbeddingProvider   →  OllamaEmbeddingProvider
    ILLMProvider         →  OllamaLLMProvider
    IPassageStore        →  InMemoryPassageStore, ChromaDBPassageStore
"""

from bankdocs.interfaces.embedding_provider import IEmbeddingProvider
from bankdocs.interfaces.llm_provider import ILLMProvider
from bankdocs.interfaces.passage_store import IPassageStore
from bankdocs.interfaces.source_loader import ISourceLoader

__all__ = [
    "IEmbeddingProvider",
    "ILLMProvider",
    "IPassageStore",
    "ISourceLoader",
]
