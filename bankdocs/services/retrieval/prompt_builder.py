"""Prompt assembly for cited answers.

Builds a bounded context block from ranked passages and wraps it with the
user's question.  Documents are numbered in rank order; the model is told
to cite them as ``[n]`` and the same numbering is used for the trailing
``Sources:`` list.
"""

from __future__ import annotations

import re

from bankdocs.models.passages import ScoredPassage

SYSTEM_PROMPT = (
    "You are a reference assistant for bank employees. Answer the question "
    "using only the numbered documents provided in the context. Cite every "
    "statement with the number of the supporting document in square "
    "brackets, for example [1] or [2][3]. If the documents do not contain "
    "enough information to answer, say clearly that you are not certain and "
    "what information is missing. Never invent thresholds, dates, "
    "approvers or policy requirements. End your answer with a 'Sources:' "
    "list of the documents you cited."
)

CONTEXT_HEADER = "Based on the following banking reference documents:"
NO_CONTEXT_MESSAGE = "No relevant information found in the knowledge base."

_SOURCES_HEADING_RE = re.compile(r"^\s*[*_#]*\s*sources?\s*[*_]*\s*:", re.IGNORECASE | re.MULTILINE)
_SOURCE_ITEM_RE = re.compile(r"^\s*(?:\[\d+\]|[-*]|\d+[.)])")


class PromptBuilder:
    """Assembles the user prompt within a fixed context budget.

    Parameters
    ----------
    max_context_chars:
        Upper bound on the size of the context block.  Passages that do not
        fit are left out; the first passage is truncated rather than dropped.
    """

    def __init__(self, max_context_chars: int = 6000) -> None:
        if max_context_chars <= 0:
            raise ValueError("max_context_chars must be positive")
        self._max_context_chars = max_context_chars

    def build_context(self, passages: list[ScoredPassage]) -> tuple[str, list[ScoredPassage]]:
        """Return the context block and the passages it actually contains."""
        if not passages:
            return NO_CONTEXT_MESSAGE, []

        context = CONTEXT_HEADER
        used: list[ScoredPassage] = []
        for result in passages:
            block = self._format_document(len(used) + 1, result)
            remaining = self._max_context_chars - len(context) - 2
            if len(block) > remaining:
                if used or remaining <= 0:
                    break
                block = block[:remaining]
            context = f"{context}\n\n{block}"
            used.append(result)

        if not used:
            return NO_CONTEXT_MESSAGE, []
        return context, used

    def build_user_prompt(
        self, query: str, passages: list[ScoredPassage]
    ) -> tuple[str, list[ScoredPassage]]:
        """Return the full user prompt and the passages numbered in it."""
        context, used = self.build_context(passages)
        prompt = f"{context}\n\nQuestion: {query.strip()}\n\nAnswer (cite documents as [n]):"
        return prompt, used

    @staticmethod
    def _format_document(number: int, result: ScoredPassage) -> str:
        meta = result.passage.metadata
        lines = [f"--- Document {number}: {meta.title or 'Untitled'} ---"]
        if meta.section_title:
            lines.append(f"Section: {meta.section_title}")
        if meta.department:
            lines.append(f"Department: {meta.department}")
        lines.append(f"Type: {meta.document_kind.value}")
        if meta.effective_date:
            lines.append(f"Effective Date: {meta.effective_date.isoformat()}")
        if meta.source_ref:
            lines.append(f"Source: {meta.source_ref}")
        lines.append("")
        lines.append(result.passage.content)
        return "\n".join(lines)


def ensure_sources_section(answer: str, sources: list[ScoredPassage]) -> str:
    """Append a ``Sources:`` list unless the answer already ends with one."""
    text = answer.rstrip()
    if _ends_with_sources(text):
        return text

    if not sources:
        return f"{text}\n\nSources:\n- No matching documents were found in the knowledge base."

    lines = []
    for number, result in enumerate(sources, start=1):
        meta = result.passage.metadata
        label = meta.title or "Untitled"
        if meta.section_title and meta.section_title != meta.title:
            label = f"{label}, {meta.section_title}"
        ref = f" ({meta.source_ref})" if meta.source_ref else ""
        lines.append(f"[{number}] {label}{ref}")
    return f"{text}\n\nSources:\n" + "\n".join(lines)


def _ends_with_sources(text: str) -> bool:
    """True when the last ``Sources:`` heading is followed only by list items."""
    headings = list(_SOURCES_HEADING_RE.finditer(text))
    if not headings:
        return False
    last = headings[-1]
    items = [line for line in text[last.end() :].splitlines() if line.strip()]
    return bool(items) and all(_SOURCE_ITEM_RE.match(line) for line in items)
