"""Keyword-aware reranking of vector search results.

The final score blends the raw cosine similarity with the share of query
keywords found in the passage, plus a small bonus when a keyword appears
in the document or section title::

    score = vector_weight * vector_score + keyword_weight * overlap + title_bonus
"""

from __future__ import annotations

import re

from bankdocs.models.passages import ScoredPassage
from bankdocs.utils.similarity import sort_scored

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")

_STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "does",
        "for", "from", "how", "i", "in", "is", "it", "of", "on", "or", "our",
        "the", "to", "we", "what", "when", "where", "which", "who", "why",
        "with", "should", "must", "there", "this", "that", "any",
    }
)


def keywords(text: str) -> set[str]:
    """Lower-cased content words of *text*."""
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS and len(t) > 1}


class Reranker:
    """Re-scores search results by blending vector and keyword relevance."""

    def __init__(
        self,
        vector_weight: float = 0.7,
        keyword_weight: float = 0.3,
        title_bonus: float = 0.05,
    ) -> None:
        if vector_weight < 0 or keyword_weight < 0 or title_bonus < 0:
            raise ValueError("Rerank weights must be non-negative")
        self._vector_weight = vector_weight
        self._keyword_weight = keyword_weight
        self._title_bonus = title_bonus

    def rerank(self, query: str, results: list[ScoredPassage]) -> list[ScoredPassage]:
        """Return *results* re-scored and re-sorted; ``vector_score`` is preserved."""
        terms = keywords(query)
        rescored = []
        for result in results:
            passage = result.passage
            overlap = len(terms & keywords(passage.content)) / len(terms) if terms else 0.0
            title_terms = keywords(f"{passage.metadata.title} {passage.metadata.section_title}")
            bonus = self._title_bonus if terms & title_terms else 0.0
            score = self._vector_weight * result.vector_score + self._keyword_weight * overlap + bonus
            rescored.append(result.model_copy(update={"score": score}))
        return sort_scored(rescored)
