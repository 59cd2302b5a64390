"""Ingestion services: parsing, chunking and run orchestration."""

from bankdocs.services.ingestion.chunker import TextChunker
from bankdocs.services.ingestion.ingestion_service import IngestionService
from bankdocs.services.ingestion.parser import DocumentParser

__all__ = ["DocumentParser", "IngestionService", "TextChunker"]
