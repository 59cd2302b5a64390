"""Web page source loader.

Fetches a configured list of URLs and reduces each page to structured text.
A URL that fails to load is yielded as a document with ``load_error`` set,
so the run counts it as failed without failing the whole source.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator

import httpx
import structlog

from bankdocs.interfaces.source_loader import ISourceLoader
from bankdocs.models.documents import RawDocument
from bankdocs.providers.loaders.html_text import extract_page_metadata, html_to_text, parse_html

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; BankDocsBot/1.0)"


class WebPageLoader(ISourceLoader):
    """Loads a fixed list of web pages."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        urls: list[str],
        user_agent: str = _DEFAULT_USER_AGENT,
        name: str = "web",
    ) -> None:
        self._client = http_client
        self._urls = [u for u in urls if u.strip()]
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def is_available(self) -> bool:
        return bool(self._urls)

    async def load_documents(self) -> AsyncIterator[RawDocument]:
        for url in self._urls:
            try:
                response = await self._client.get(
                    url, headers=self._headers, follow_redirects=True
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                logger.warning("web_page_fetch_failed", url=url, status=status)
                yield self._failed(url, f"HTTP {status} fetching {url}")
                continue
            except httpx.HTTPError as exc:
                logger.warning("web_page_fetch_failed", url=url, error=str(exc))
                yield self._failed(url, f"Cannot fetch {url}: {exc}")
                continue

            soup = parse_html(response.text)
            meta = extract_page_metadata(soup)
            content = html_to_text(soup)
            if not content:
                logger.warning("web_page_empty", url=url)
                continue

            logger.info("web_page_fetched", url=url, title=meta["title"], chars=len(content))
            yield RawDocument(
                id=url,
                content=content,
                source_path=url,
                metadata={
                    **meta,
                    "url": url,
                    "fetched_at": datetime.now(tz=timezone.utc).isoformat(),  # noqa: UP017
                },
            )

    @staticmethod
    def _failed(url: str, reason: str) -> RawDocument:
        return RawDocument(
            id=url, content="", source_path=url, metadata={"url": url}, load_error=reason
        )
