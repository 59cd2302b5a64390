"""Ollama LLM provider adapter.

Wraps a local Ollama server via its OpenAI-compatible API endpoint, using
the ``openai`` client library pointed at the Ollama base URL.  The default
model is ``phi3.5``; pull it with ``ollama pull phi3.5``.

Connection errors, timeouts and rate limiting are retried with exponential
backoff here, so the answer service makes exactly one ``complete`` call per
question.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from bankdocs.config.settings import Settings
from bankdocs.interfaces.llm_provider import ILLMProvider
from bankdocs.utils.concurrency import retry_async
from bankdocs.utils.errors import LLMError, ProviderUnavailableError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server.

    Ollama exposes an OpenAI-compatible ``/v1`` API, so this adapter reuses
    the ``openai.AsyncOpenAI`` client pointed at the local URL.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            # The openai SDK requires a non-empty key; Ollama ignores it.
            api_key="ollama",
            timeout=settings.ollama_timeout,
            max_retries=0,
        )
        self._model = settings.ollama_chat_model
        self._max_retries = settings.ollama_max_retries
        self._base_delay = settings.ollama_retry_base_delay

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a text completion via Ollama's OpenAI-compatible API."""

        async def _call() -> str | None:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content

        try:
            content = await retry_async(
                _call,
                retry_on=_TRANSIENT_ERRORS,
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                operation="ollama_complete",
                logger=logger,
            )
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise ProviderUnavailableError(
                message=f"Ollama server unreachable: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"Ollama rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"Ollama API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not content or not content.strip():
            raise LLMError(
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("ollama_completion", model=self._model, response_chars=len(content))
        return content

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama base URL is configured."""
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """Check that the Ollama server answers on ``/api/tags``.

        Ollama has no API key; this confirms the server is running and
        reachable at the configured URL without running inference.
        """
        if not self.is_available():
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def get_provider_name(self) -> str:
        return "ollama"
