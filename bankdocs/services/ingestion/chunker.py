"""Structure-aware text chunking with character-bounded overlapping windows.

Splits normalized document text into :class:`~bankdocs.models.documents.TextSpan`
objects sized for embedding models.

The strategy has three layers:

1. **Section-first** -- Markdown headings (``# Title``) and short numbered
   headings (``2.1 Scope``) cut the text into sections.  A section that fits
   the budget becomes a single ``complete`` span.  Text without headings is
   one section named after the document.

2. **Sentence windows** -- An oversized section is split at sentence
   boundaries (abbreviation-aware, so "approx." or "No." do not end a
   sentence) and sentences are packed into ``partial`` spans.  Each new
   window starts with the last ``overlap_chars`` characters of the previous
   one so that a fact straddling the cut is retrievable from either side.

3. **Section marker** -- Every span starts with ``[Section: <title>]`` so a
   retrieved passage describes itself even out of document order.

Hard bound: no span is longer than ``max_chunk_chars + overlap_chars``.
Anything that would exceed it is truncated and logged, never retried.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from bankdocs.models.documents import SpanCompleteness, TextSpan

logger = structlog.get_logger(logger_name=__name__)

# Abbreviations whose trailing period should NOT end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Jr",
        "Sr",
        "St",
        "No",
        "Nos",
        "vs",
        "etc",
        "approx",
        "dept",
        "Dept",
        "est",
        "inc",
        "Inc",
        "ltd",
        "Ltd",
        "co",
        "Co",
        "Corp",
        "Ref",
        "Sec",
        "Art",
        "e.g",
        "i.e",
    }
)
_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)|\n")

_MARKDOWN_HEADING_RE = re.compile(r"^#{1,6}[ \t]+(?P<title>.+?)[ \t#]*$", re.MULTILINE)
_NUMBERED_HEADING_RE = re.compile(
    r"^(?P<title>\d+(?:\.\d+)*\.?[ \t]+[A-Z][^\n]{0,80})$", re.MULTILINE
)
_MAX_HEADING_WORDS = 10

_MARKER_TEMPLATE = "[Section: {title}]\n"
_DEFAULT_SECTION_TITLE = "Document"

# Smallest budget that holds an empty-title marker plus one character of text.
MIN_CHUNK_CHARS = len(_MARKER_TEMPLATE.format(title="")) + 1


@dataclass
class _Section:
    title: str
    body: str
    start: int


@dataclass
class _Piece:
    text: str
    start: int
    end: int


class TextChunker:
    """Splits text into section-labelled, overlapping spans.

    Parameters
    ----------
    max_chunk_chars:
        Default character budget per span, marker included (default 1000).
    overlap_chars:
        Default number of trailing characters carried into the next span of
        an oversized section (default 200).
    """

    def __init__(self, max_chunk_chars: int = 1000, overlap_chars: int = 200) -> None:
        _validate(max_chunk_chars, overlap_chars)
        self._max_chunk_chars = max_chunk_chars
        self._overlap_chars = overlap_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        max_chunk_chars: int | None = None,
        overlap_chars: int | None = None,
        title: str | None = None,
    ) -> list[TextSpan]:
        """Split *text* into :class:`TextSpan` objects.

        Parameters
        ----------
        text:
            Normalized document text.
        max_chunk_chars:
            Character budget per span; defaults to the constructor value.
        overlap_chars:
            Overlap carried between partial spans; defaults to the
            constructor value.
        title:
            Document title, used for text that precedes the first heading.

        Returns
        -------
        list[TextSpan]
            At least one span for any non-blank input; empty input returns
            an empty list.

        Raises
        ------
        ValueError
            If ``max_chunk_chars`` is below :data:`MIN_CHUNK_CHARS` (too
            small for the section marker), ``overlap_chars < 0`` or
            ``overlap_chars >= max_chunk_chars``.
        """
        max_chars = self._max_chunk_chars if max_chunk_chars is None else max_chunk_chars
        overlap = self._overlap_chars if overlap_chars is None else overlap_chars
        _validate(max_chars, overlap)

        if not text or not text.strip():
            return []

        sections = self._split_sections(text, (title or "").strip() or _DEFAULT_SECTION_TITLE)
        spans: list[TextSpan] = []
        for section in sections:
            spans.extend(self._chunk_section(section, max_chars, overlap))

        logger.debug(
            "chunking_complete",
            num_sections=len(sections),
            num_spans=len(spans),
            partial_spans=sum(1 for s in spans if s.completeness is SpanCompleteness.PARTIAL),
            max_chunk_chars=max_chars,
        )
        return spans

    # ------------------------------------------------------------------
    # Section detection
    # ------------------------------------------------------------------

    def _split_sections(self, text: str, default_title: str) -> list[_Section]:
        """Cut *text* at headings; blank sections are dropped."""
        headings = self._find_headings(text)

        raw: list[tuple[str, int, int]] = []
        cursor_title, cursor = default_title, 0
        for start, end, heading_title in headings:
            raw.append((cursor_title, cursor, start))
            cursor_title, cursor = heading_title, end
        raw.append((cursor_title, cursor, len(text)))

        sections: list[_Section] = []
        for section_title, start, end in raw:
            body = text[start:end]
            stripped = body.lstrip()
            body_start = start + (len(body) - len(stripped))
            stripped = stripped.rstrip()
            if stripped:
                sections.append(_Section(title=section_title, body=stripped, start=body_start))
        return sections

    @staticmethod
    def _find_headings(text: str) -> list[tuple[int, int, str]]:
        """Return ``(start, end, title)`` for every heading line, in order."""
        found: dict[int, tuple[int, int, str]] = {}
        for match in _MARKDOWN_HEADING_RE.finditer(text):
            found[match.start()] = (match.start(), match.end(), match.group("title").strip())
        for match in _NUMBERED_HEADING_RE.finditer(text):
            line = match.group("title").rstrip()
            if line.endswith((".", "!", "?", ":", ";", ",")):
                continue
            if len(line.split()) > _MAX_HEADING_WORDS:
                continue
            found.setdefault(match.start(), (match.start(), match.end(), line))
        return [found[k] for k in sorted(found)]

    # ------------------------------------------------------------------
    # Section chunking
    # ------------------------------------------------------------------

    def _chunk_section(self, section: _Section, max_chars: int, overlap: int) -> list[TextSpan]:
        marker = self._marker(section.title, max_chars)
        budget = max(1, max_chars - len(marker))
        limit = max_chars + overlap

        if len(section.body) <= budget:
            return [
                self._make_span(
                    marker,
                    section.body,
                    section.start,
                    section.start + len(section.body),
                    section.title,
                    SpanCompleteness.COMPLETE,
                    limit,
                )
            ]

        spans: list[TextSpan] = []
        buffer = ""
        buf_start = buf_end = section.start

        for piece in self._split_pieces(section.body, section.start, budget):
            if buffer and len(buffer) + 1 + len(piece.text) > budget:
                spans.append(
                    self._make_span(
                        marker, buffer, buf_start, buf_end, section.title,
                        SpanCompleteness.PARTIAL, limit,
                    )
                )
                # Carry the tail forward, shortened so the window stays within budget + overlap.
                carry_len = min(overlap, len(buffer), budget + overlap - len(piece.text) - 1)
                if carry_len > 0:
                    carry = buffer[-carry_len:].lstrip()
                    buf_start = max(buf_start, buf_end - carry_len)
                    buffer = f"{carry} {piece.text}" if carry else piece.text
                    if not carry:
                        buf_start = piece.start
                else:
                    buffer = piece.text
                    buf_start = piece.start
                buf_end = piece.end
            elif buffer:
                buffer = f"{buffer} {piece.text}"
                buf_end = piece.end
            else:
                buffer = piece.text
                buf_start, buf_end = piece.start, piece.end

        if buffer:
            spans.append(
                self._make_span(
                    marker, buffer, buf_start, buf_end, section.title,
                    SpanCompleteness.PARTIAL, limit,
                )
            )
        return spans

    @staticmethod
    def _marker(title: str, max_chars: int) -> str:
        """Build the section marker, shortening long titles to half the budget."""
        room = max(0, max_chars // 2 - len(_MARKER_TEMPLATE.format(title="")))
        if len(title) > room:
            title = title[: room - 3] + "..." if room > 3 else title[:room]
        return _MARKER_TEMPLATE.format(title=title)

    @staticmethod
    def _make_span(
        marker: str,
        body: str,
        start: int,
        end: int,
        section_title: str,
        completeness: SpanCompleteness,
        limit: int,
    ) -> TextSpan:
        content = marker + body
        if len(content) > limit:
            logger.warning(
                "chunk_capped",
                section=section_title,
                length=len(content),
                limit=limit,
            )
            content = content[:limit]
        return TextSpan(
            content=content,
            start_offset=start,
            end_offset=max(start, end),
            section_title=section_title,
            completeness=completeness,
        )

    # ------------------------------------------------------------------
    # Sentence / word splitting
    # ------------------------------------------------------------------

    def _split_pieces(self, body: str, offset: int, budget: int) -> list[_Piece]:
        """Split *body* into sentences no longer than *budget*.

        Sentences over the budget are split at word boundaries; single words
        over the budget are hard-cut.
        """
        pieces: list[_Piece] = []
        for sentence in self._split_sentences(body, offset):
            if len(sentence.text) <= budget:
                pieces.append(sentence)
            else:
                pieces.extend(self._split_words(sentence, budget))
        return pieces

    @staticmethod
    def _split_sentences(text: str, offset: int) -> list[_Piece]:
        """Split at ``.``/``!``/``?`` followed by whitespace, and at newlines.

        Periods after known abbreviations are masked first (replaced by
        ``\\x00``, same length, so indices stay aligned with *text*).
        """
        masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

        sentences: list[_Piece] = []
        last = 0
        for match in _SENTENCE_END_RE.finditer(masked):
            end = match.end()
            _append_stripped(sentences, text, last, end, offset)
            last = end
        _append_stripped(sentences, text, last, len(text), offset)
        return sentences

    @staticmethod
    def _split_words(sentence: _Piece, budget: int) -> list[_Piece]:
        pieces: list[_Piece] = []
        current: list[tuple[str, int, int]] = []
        current_len = 0

        def flush() -> None:
            if current:
                pieces.append(
                    _Piece(
                        text=" ".join(w for w, _, _ in current),
                        start=current[0][1],
                        end=current[-1][2],
                    )
                )

        for match in re.finditer(r"\S+", sentence.text):
            word = match.group()
            w_start = sentence.start + match.start()
            if len(word) > budget:
                flush()
                current, current_len = [], 0
                for i in range(0, len(word), budget):
                    part = word[i : i + budget]
                    pieces.append(_Piece(part, w_start + i, w_start + i + len(part)))
                continue
            added = len(word) + (1 if current else 0)
            if current and current_len + added > budget:
                flush()
                current, current_len = [], 0
                added = len(word)
            current.append((word, w_start, w_start + len(word)))
            current_len += added
        flush()
        return pieces


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate(max_chunk_chars: int, overlap_chars: int) -> None:
    if max_chunk_chars <= 0:
        raise ValueError("max_chunk_chars must be positive")
    if max_chunk_chars < MIN_CHUNK_CHARS:
        raise ValueError(
            f"max_chunk_chars must be at least {MIN_CHUNK_CHARS} to fit the section marker"
        )
    if overlap_chars < 0:
        raise ValueError("overlap_chars cannot be negative")
    if overlap_chars >= max_chunk_chars:
        raise ValueError("overlap_chars must be less than max_chunk_chars")


def _append_stripped(out: list[_Piece], text: str, start: int, end: int, offset: int) -> None:
    segment = text[start:end]
    stripped = segment.strip()
    if not stripped:
        return
    lead = len(segment) - len(segment.lstrip())
    s = offset + start + lead
    out.append(_Piece(text=stripped, start=s, end=s + len(stripped)))
