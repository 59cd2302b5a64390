"""Retrieval services: query enhancement, reranking, prompt assembly, answers."""

from bankdocs.services.retrieval.answer_service import AnswerService
from bankdocs.services.retrieval.prompt_builder import PromptBuilder
from bankdocs.services.retrieval.query_enhancer import QueryEnhancer
from bankdocs.services.retrieval.reranker import Reranker

__all__ = ["AnswerService", "PromptBuilder", "QueryEnhancer", "Reranker"]
