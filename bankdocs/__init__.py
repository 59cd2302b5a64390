"""bankdocs: banking reference document ingestion and question answering.

Loads documents from local files, Jira, Confluence and web pages, chunks and
embeds them into a passage store, and answers questions with cited passages
through an Ollama-served generation model.
"""

__version__ = "0.1.0"
