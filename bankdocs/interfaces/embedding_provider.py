"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-length vectors.  The
concrete adapter wraps Ollama's ``nomic-embed-text``; tests inject a
deterministic in-memory provider.  Retries, if any, belong to the concrete
provider, never to the orchestrators that call it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OllamaEmbeddingProvider (bankdocs/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval.

    The output dimensionality is fixed per deployment; passages embedded with
    one dimension cannot be searched with vectors of another.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations split the
            batch internally if the backend has a per-call limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        bankdocs.utils.errors.RAGError
            If the embedding call fails permanently.
        bankdocs.utils.errors.ProviderUnavailableError
            If the backend stays unreachable after retries.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text (e.g. a query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"ollama-nomic-embed-text"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
