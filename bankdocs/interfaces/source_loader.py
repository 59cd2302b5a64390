"""Abstract base class for document source loaders.

A loader knows one data source (a directory, a Jira project, a Confluence
space, a list of web pages) and yields :class:`RawDocument` objects from it.
``load_documents`` is an async generator: documents are produced lazily,
the sequence is finite, and each call starts a fresh enumeration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from bankdocs.models.documents import RawDocument


# Concrete implementations: LocalFileLoader, JiraLoader, ConfluenceLoader,
# WebPageLoader.  Located in: bankdocs/providers/loaders/
class ISourceLoader(ABC):
    """Contract for document sources consumed by the ingestion orchestrator."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable name used in run reports and ``source_filter`` lists."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return ``True`` if the source is configured and reachable.

        An unavailable source is reported as failed for the run; the run
        itself continues with the next source.
        """

    @abstractmethod
    def load_documents(self) -> AsyncIterator[RawDocument]:
        """Yield the documents of this source.

        Raises
        ------
        bankdocs.utils.errors.SourceLoadError
            If the source cannot be enumerated.  Any exception raised while
            iterating marks the whole source as failed.
        """
