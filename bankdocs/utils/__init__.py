"""Utility modules for bankdocs.

- **errors** -- exception hierarchy rooted at BankDocsError.
- **logging** -- structlog setup with console/JSON dual rendering.
- **concurrency** -- semaphore-throttled gather and async retry with backoff.
- **similarity** -- cosine similarity and exact ranking shared by passage stores.
"""

from bankdocs.utils.errors import (
    BankDocsError,
    ConfigurationError,
    IngestionBusyError,
    IngestionError,
    LLMError,
    ProviderUnavailableError,
    RAGError,
    RateLimitError,
    RunNotFoundError,
    SourceLoadError,
)
from bankdocs.utils.logging import configure_logging, get_logger

__all__ = [
    "BankDocsError",
    "ConfigurationError",
    "IngestionBusyError",
    "IngestionError",
    "LLMError",
    "ProviderUnavailableError",
    "RAGError",
    "RateLimitError",
    "RunNotFoundError",
    "SourceLoadError",
    "configure_logging",
    "get_logger",
]
