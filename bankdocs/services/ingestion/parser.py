"""Banking document parser and metadata extractor.

Normalizes raw document text and pulls out the banking metadata the search
layer filters on: department, effective date, version and document kind.

The heuristics are deliberately light regex and keyword classifiers.  Their
output is a soft hint stored as filterable metadata; nothing downstream
depends on it being right, so :meth:`DocumentParser.parse` never raises.
When extraction fails the document still gets a title and defaults
(``General``, empty department/version, no effective date).
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

import structlog

from bankdocs.models.documents import DocumentKind, DocumentMetadata, ParsedDocument

logger = structlog.get_logger(logger_name=__name__)

_MAX_TITLE_CHARS = 100

_DEPARTMENT_RE = re.compile(r"(?:Department|Dept)[:|\s]+([A-Za-z\s&]+)")
_EFFECTIVE_DATE_RE = re.compile(
    r"(?:Effective Date|Effective)[:|\s]+(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})", re.IGNORECASE
)
_EFFECTIVE_ISO_DATE_RE = re.compile(
    r"(?:Effective Date|Effective)[:|\s]+(\d{4})-(\d{2})-(\d{2})", re.IGNORECASE
)
_VERSION_RE = re.compile(r"\b(?:Version|Ver|V)[:|\s]+(\d+(?:\.\d+)*)", re.IGNORECASE)

# Fallback when no explicit "Department:" line exists.
_DEPARTMENT_KEYWORDS = (
    "Risk",
    "Compliance",
    "Operations",
    "Technology",
    "Finance",
    "Legal",
    "Treasury",
)

# Checked in order; title matches win over body matches.
_KIND_PATTERNS: tuple[tuple[DocumentKind, re.Pattern[str]], ...] = (
    (DocumentKind.POLICY, re.compile(r"\bpolic(?:y|ies)\b", re.IGNORECASE)),
    (DocumentKind.PROCEDURE, re.compile(r"\bprocedures?\b", re.IGNORECASE)),
    (
        DocumentKind.REFERENCE_DATA,
        re.compile(r"\b(?:reference|lookup|mapping|codes)\b", re.IGNORECASE),
    ),
)


class DocumentParser:
    """Turns raw document text into a :class:`ParsedDocument`."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(
        self,
        raw_content: str,
        title: str = "",
        extensions: dict[str, Any] | None = None,
    ) -> ParsedDocument:
        """Normalize *raw_content* and extract its metadata.

        Parameters
        ----------
        raw_content:
            Text as produced by a source loader.
        title:
            Title suggested by the loader (file name, issue summary, page
            title).  A leading Markdown heading in the content takes
            precedence.
        extensions:
            Loader metadata copied into ``DocumentMetadata.extensions``.

        Returns
        -------
        ParsedDocument
            Never raises; extraction problems yield default metadata.
        """
        content = normalize_text(raw_content or "")
        resolved_title = self._resolve_title(content, title)
        try:
            metadata = self._extract_metadata(content, resolved_title, extensions or {})
        except Exception as exc:  # noqa: BLE001
            logger.warning("metadata_extraction_failed", title=resolved_title, error=str(exc))
            metadata = DocumentMetadata(title=resolved_title, extensions=dict(extensions or {}))

        return ParsedDocument(content=content, metadata=metadata)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def _extract_metadata(
        self, content: str, title: str, extensions: dict[str, Any]
    ) -> DocumentMetadata:
        return DocumentMetadata(
            title=title,
            department=self._extract_department(content),
            document_kind=self._classify_kind(title, content),
            effective_date=self._extract_effective_date(content),
            version=self._extract_version(content),
            extensions=dict(extensions),
        )

    @staticmethod
    def _resolve_title(content: str, suggested: str) -> str:
        first_line = next((ln.strip() for ln in content.split("\n") if ln.strip()), "")
        if first_line.startswith("#"):
            candidate = first_line.lstrip("#").strip()
        elif suggested.strip():
            candidate = suggested.strip()
        else:
            candidate = first_line
        candidate = candidate or "Untitled"
        if len(candidate) > _MAX_TITLE_CHARS:
            candidate = candidate[:_MAX_TITLE_CHARS] + "..."
        return candidate

    @staticmethod
    def _extract_department(content: str) -> str:
        match = _DEPARTMENT_RE.search(content)
        if match:
            department = match.group(1).split("\n")[0].strip()
            if department:
                return department[:50].strip()

        for keyword in _DEPARTMENT_KEYWORDS:
            if re.search(rf"\b{keyword}\b", content, re.IGNORECASE):
                return keyword
        return ""

    @staticmethod
    def _extract_effective_date(content: str) -> date | None:
        iso = _EFFECTIVE_ISO_DATE_RE.search(content)
        if iso:
            return _safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

        match = _EFFECTIVE_DATE_RE.search(content)
        if not match:
            return None
        first, second, year = (int(p) for p in re.split(r"[/-]", match.group(1)))
        if year < 100:
            year += 2000
        # Month-first, falling back to day-first when the first field cannot be a month.
        return _safe_date(year, first, second) or _safe_date(year, second, first)

    @staticmethod
    def _extract_version(content: str) -> str:
        match = _VERSION_RE.search(content)
        return match.group(1) if match else ""

    @staticmethod
    def _classify_kind(title: str, content: str) -> DocumentKind:
        for kind, pattern in _KIND_PATTERNS:
            if pattern.search(title):
                return kind

        best_kind = DocumentKind.GENERAL
        best_hits = 0
        for kind, pattern in _KIND_PATTERNS:
            hits = len(pattern.findall(content))
            if hits > best_hits:
                best_kind, best_hits = kind, hits
        return best_kind


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_text(text: str) -> str:
    """Normalize line endings and whitespace without changing the wording."""
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ")
    lines = [ln.rstrip() for ln in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None
