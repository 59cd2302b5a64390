"""Ollama embedding provider adapter.

Wraps the Ollama OpenAI-compatible endpoint to implement
:class:`IEmbeddingProvider` using ``nomic-embed-text`` (768 dimensions).
Runs locally with no API key required.

Transient failures (connection errors, timeouts, rate limiting) are retried
with exponential backoff inside this adapter; callers see either vectors or
a mapped :mod:`bankdocs.utils.errors` exception.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from bankdocs.config.settings import Settings
from bankdocs.interfaces.embedding_provider import IEmbeddingProvider
from bankdocs.utils.concurrency import retry_async
from bankdocs.utils.errors import ProviderUnavailableError, RAGError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_OLLAMA_BATCH_LIMIT = 512

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
)


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a model served via Ollama.

    Handles automatic batching for inputs exceeding 512 texts per call.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama doesn't require a real key
            timeout=settings.ollama_timeout,
            max_retries=0,
        )
        self._model = settings.ollama_embedding_model
        self._dimension = settings.ollama_embedding_dimension
        self._max_retries = settings.ollama_max_retries
        self._base_delay = settings.ollama_retry_base_delay

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Automatically splits into batches of 512 for the Ollama backend.
        """
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
            batch = texts[start : start + _OLLAMA_BATCH_LIMIT]
            all_embeddings.extend(await self._embed_batch(batch))
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"ollama-{self._model}"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server is reachable."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        async def _call() -> list[list[float]]:
            response = await self._client.embeddings.create(input=batch, model=self._model)
            return [list(item.embedding) for item in response.data]

        try:
            vectors = await retry_async(
                _call,
                retry_on=_TRANSIENT_ERRORS,
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                operation="ollama_embed",
                logger=logger,
            )
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise ProviderUnavailableError(
                message=f"Ollama embedding endpoint unreachable: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"Ollama embedding rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise RAGError(
                message=f"Ollama embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if len(vectors) != len(batch):
            raise RAGError(
                message=f"Ollama returned {len(vectors)} embeddings for {len(batch)} texts",
                provider_name=self.get_provider_name(),
            )
        logger.debug("ollama_embedding_batch", model=self._model, batch_size=len(batch))
        return vectors
