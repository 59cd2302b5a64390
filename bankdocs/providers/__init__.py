"""Concrete adapters behind the interfaces in :mod:`bankdocs.interfaces`.

    embedding/  -- OllamaEmbeddingProvider
    llm/        -- OllamaLLMProvider
    store/      -- InMemoryPassageStore, ChromaDBPassageStore
    loaders/    -- LocalFileLoader, JiraLoader, ConfluenceLoader, WebPageLoader
"""
