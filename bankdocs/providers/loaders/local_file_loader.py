"""Local directory source loader.

Recursively scans a directory for reference documents and yields one
:class:`RawDocument` per file, in sorted path order.  Plain text, Markdown
and JSON are read as UTF-8; HTML is reduced to text with BeautifulSoup;
PDF text is extracted page by page with PyMuPDF.  All file access runs in
a worker thread via ``asyncio.to_thread``.  A file that cannot be read is
yielded with ``load_error`` set so the run records it as failed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import fitz  # PyMuPDF
import structlog

from bankdocs.interfaces.source_loader import ISourceLoader
from bankdocs.models.documents import RawDocument
from bankdocs.providers.loaders.html_text import extract_page_metadata, html_to_text, parse_html
from bankdocs.utils.errors import SourceLoadError

logger = structlog.get_logger(logger_name=__name__)

SUPPORTED_EXTENSIONS = frozenset({".txt", ".md", ".json", ".html", ".htm", ".pdf"})


class LocalFileLoader(ISourceLoader):
    """Loads documents from a directory tree.

    Parameters
    ----------
    root_path:
        Directory to scan recursively.
    name:
        Source name used in run reports.
    """

    def __init__(self, root_path: str, name: str = "local") -> None:
        self._root = Path(root_path)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def is_available(self) -> bool:
        return await asyncio.to_thread(self._root.is_dir)

    async def load_documents(self) -> AsyncIterator[RawDocument]:
        if not await asyncio.to_thread(self._root.is_dir):
            raise SourceLoadError(
                message=f"Document directory not found: {self._root}",
                provider_name=self._name,
            )

        paths = await asyncio.to_thread(self._scan)
        logger.info("local_scan_complete", root=str(self._root), files=len(paths))

        for path in paths:
            try:
                document = await asyncio.to_thread(self._read_document, path)
            except (OSError, ValueError, RuntimeError) as exc:
                logger.warning("local_file_unreadable", path=str(path), error=str(exc))
                yield RawDocument(
                    id=str(path.relative_to(self._root)),
                    content="",
                    source_path=str(path.resolve()),
                    metadata={"file_name": path.name, "extension": path.suffix.lower()},
                    load_error=f"Cannot read {path.name}: {exc}",
                )
                continue
            if document is not None:
                yield document

    # ------------------------------------------------------------------
    # Private helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _scan(self) -> list[Path]:
        return sorted(
            p
            for p in self._root.rglob("*")
            if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
        )

    def _read_document(self, path: Path) -> RawDocument | None:
        extension = path.suffix.lower()
        title = path.stem.replace("_", " ").replace("-", " ").strip()

        if extension == ".pdf":
            content = self._read_pdf(path)
        elif extension in (".html", ".htm"):
            soup = parse_html(path.read_text(encoding="utf-8", errors="replace"))
            title = extract_page_metadata(soup)["title"] or title
            content = html_to_text(soup)
        else:
            content = path.read_text(encoding="utf-8", errors="replace")

        if not content.strip():
            logger.debug("local_file_empty", path=str(path))
            return None

        stat = path.stat()
        return RawDocument(
            id=str(path.relative_to(self._root)),
            content=content,
            source_path=str(path.resolve()),
            metadata={
                "file_name": path.name,
                "extension": extension,
                "last_modified": datetime.fromtimestamp(
                    stat.st_mtime, tz=timezone.utc  # noqa: UP017
                ).isoformat(),
                "title": title,
            },
        )

    @staticmethod
    def _read_pdf(path: Path) -> str:
        doc = fitz.open(str(path))
        try:
            pages = [doc[i].get_text("text").strip() for i in range(len(doc))]
        finally:
            doc.close()
        if not any(pages):
            logger.warning("pdf_no_text_extracted", path=str(path))
        return "\n\n".join(p for p in pages if p)
