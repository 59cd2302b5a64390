"""Passage store adapters: in-memory (default) and ChromaDB (persistent)."""

from bankdocs.providers.store.memory_store import InMemoryPassageStore

__all__ = ["InMemoryPassageStore"]
