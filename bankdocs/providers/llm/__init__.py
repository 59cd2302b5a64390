"""Generation model provider adapters."""

from bankdocs.providers.llm.ollama_provider import OllamaLLMProvider

__all__ = ["OllamaLLMProvider"]
