"""Abstract base class for generation-model providers.

The answer service calls :meth:`ILLMProvider.complete` exactly once per
question; retry policy lives inside the concrete provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OllamaLLMProvider (bankdocs/providers/llm/)
class ILLMProvider(ABC):
    """Contract for text-generation services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            Fixed instructions that set the model's behaviour.
        user_prompt:
            The assembled context and question.
        temperature:
            Sampling temperature (0.0 = deterministic).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        bankdocs.utils.errors.LLMError
            If the call fails or returns an empty response.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Return ``True`` if the backend answers a lightweight probe."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"ollama"``."""
