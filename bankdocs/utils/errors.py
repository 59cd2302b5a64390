"""Custom exception hierarchy for bankdocs.

All application exceptions inherit from :class:`BankDocsError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "ollama", "jira", "chromadb") caused the failure.

The hierarchy is organized by pipeline concern:

    BankDocsError  (base -- catch-all for any bankdocs error)
    +-- ConfigurationError       (startup / missing config)
    +-- ProviderUnavailableError (external service down / unreachable)  [retryable]
    +-- RateLimitError           (provider rate-limit exceeded)          [retryable]
    +-- LLMError                 (generation model call failure)
    +-- RAGError                 (embedding or passage-store failure)
    +-- SourceLoadError          (a source loader could not enumerate documents)
    +-- IngestionError           (ingestion orchestration failure)
        +-- IngestionBusyError   (another run holds the run gate)
        +-- RunNotFoundError     (unknown ingestion run id)

Subclasses only declare ``default_message`` and, for transient causes,
``retryable = True``; the API layer reports the flag so callers know
whether repeating the same request may succeed.
"""

from __future__ import annotations


class BankDocsError(Exception):
    """Base exception for all bankdocs errors.

    Every instance carries a human-readable ``message`` (the class's
    ``default_message`` when none is given) and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets,
    e.g. ``[ollama] Connection refused``.
    """

    default_message = "An unexpected error occurred"
    retryable: bool = False

    def __init__(self, message: str | None = None, provider_name: str | None = None) -> None:
        self._message = message or self.default_message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(BankDocsError):
    """Raised when configuration is invalid or missing at startup."""

    default_message = "Invalid or missing configuration"


# ---------------------------------------------------------------------------
# External services: Ollama, passage stores, document sources
# ---------------------------------------------------------------------------

class ProviderUnavailableError(BankDocsError):
    """Raised when an external service is unreachable or timed out."""

    default_message = "External service is unavailable"
    retryable = True


class RateLimitError(BankDocsError):
    """Raised when a provider rejects a call because of rate limiting."""

    default_message = "Rate limit exceeded"
    retryable = True


class LLMError(BankDocsError):
    """Raised when a generation model call fails or returns an empty response."""

    default_message = "LLM API call failed"


class RAGError(BankDocsError):
    """Raised when an embedding or passage-store operation fails."""

    default_message = "RAG pipeline operation failed"


class SourceLoadError(BankDocsError):
    """Raised when a source cannot enumerate its documents or one of them cannot be read."""

    default_message = "Source could not be loaded"


# ---------------------------------------------------------------------------
# Ingestion orchestration
# ---------------------------------------------------------------------------

class IngestionError(BankDocsError):
    """Raised when ingestion orchestration fails."""

    default_message = "Ingestion failed"


class IngestionBusyError(IngestionError):
    """Raised when a run cannot start because another run is in progress."""

    default_message = "Another ingestion run is already in progress"


class RunNotFoundError(IngestionError):
    """Raised when an ingestion run id is unknown."""

    default_message = "Ingestion run not found"
