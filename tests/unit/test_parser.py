"""Unit tests for DocumentParser - normalization and banking metadata extraction."""

from __future__ import annotations

from datetime import date

import pytest

from bankdocs.models.documents import DocumentKind
from bankdocs.services.ingestion.parser import DocumentParser, normalize_text


@pytest.fixture
def parser() -> DocumentParser:
    return DocumentParser()


class TestNormalizeText:
    def test_line_endings_and_tabs(self) -> None:
        assert normalize_text("a\r\nb\rc\td") == "a\nb\nc d"

    def test_collapses_blank_runs_and_trailing_space(self) -> None:
        assert normalize_text("  first   \n\n\n\n\nsecond  \n") == "first\n\nsecond"

    def test_empty(self) -> None:
        assert normalize_text("") == ""


class TestTitle:
    def test_markdown_heading_wins_over_suggested(self, parser: DocumentParser) -> None:
        doc = parser.parse("# Wire Transfer Policy\n\nBody.", title="wire.md")
        assert doc.metadata.title == "Wire Transfer Policy"

    def test_suggested_title_used_without_heading(self, parser: DocumentParser) -> None:
        doc = parser.parse("Plain body text.", title="REF-12: Cut-off times")
        assert doc.metadata.title == "REF-12: Cut-off times"

    def test_first_line_fallback(self, parser: DocumentParser) -> None:
        doc = parser.parse("Overdraft Fees\nFees apply daily.")
        assert doc.metadata.title == "Overdraft Fees"

    def test_long_title_truncated(self, parser: DocumentParser) -> None:
        doc = parser.parse("x" * 150)
        assert doc.metadata.title == "x" * 100 + "..."

    def test_empty_content_is_untitled(self, parser: DocumentParser) -> None:
        doc = parser.parse("")
        assert doc.content == ""
        assert doc.metadata.title == "Untitled"
        assert doc.metadata.document_kind is DocumentKind.GENERAL


class TestMetadataExtraction:
    def test_explicit_fields(self, parser: DocumentParser) -> None:
        content = (
            "# Wire Transfer Policy\n"
            "Department: Treasury\n"
            "Effective Date: 2024-03-01\n"
            "Version: 2.1\n\n"
            "Transfers above the threshold require approval."
        )
        meta = parser.parse(content).metadata
        assert meta.department == "Treasury"
        assert meta.effective_date == date(2024, 3, 1)
        assert meta.version == "2.1"
        assert meta.document_kind is DocumentKind.POLICY

    def test_slash_date_is_month_first(self, parser: DocumentParser) -> None:
        meta = parser.parse("Effective Date: 03/04/2024").metadata
        assert meta.effective_date == date(2024, 3, 4)

    def test_slash_date_falls_back_to_day_first(self, parser: DocumentParser) -> None:
        meta = parser.parse("Effective: 25/12/23").metadata
        assert meta.effective_date == date(2023, 12, 25)

    def test_invalid_date_is_none(self, parser: DocumentParser) -> None:
        meta = parser.parse("Effective Date: 31/31/2024").metadata
        assert meta.effective_date is None

    def test_department_keyword_fallback(self, parser: DocumentParser) -> None:
        meta = parser.parse("All compliance staff must attend training.").metadata
        assert meta.department == "Compliance"

    def test_no_department(self, parser: DocumentParser) -> None:
        assert parser.parse("Nothing relevant here.").metadata.department == ""

    def test_kind_from_body_counts(self, parser: DocumentParser) -> None:
        content = "Overview\nThis procedure describes steps. Follow the procedure in order."
        assert parser.parse(content).metadata.document_kind is DocumentKind.PROCEDURE

    def test_title_kind_beats_body(self, parser: DocumentParser) -> None:
        content = "# Branch Codes Reference\nSee the procedure and the procedures list."
        assert parser.parse(content).metadata.document_kind is DocumentKind.REFERENCE_DATA

    def test_extensions_are_copied(self, parser: DocumentParser) -> None:
        extensions = {"issue_key": "REF-7", "status": "Done"}
        doc = parser.parse("Text", extensions=extensions)
        assert doc.metadata.extensions == extensions
        assert doc.metadata.extensions is not extensions
