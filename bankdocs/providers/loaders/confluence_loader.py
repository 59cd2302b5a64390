"""Confluence space source loader.

Lists the pages of one space through ``GET /rest/api/content`` (storage
body and version expanded), following ``_links.next`` until the last page.
Storage-format HTML is reduced to text with the shared HTML helper.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import httpx
import structlog

from bankdocs.interfaces.source_loader import ISourceLoader
from bankdocs.models.documents import RawDocument
from bankdocs.providers.loaders.html_text import html_to_text
from bankdocs.utils.errors import SourceLoadError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_LIMIT = 25


class ConfluenceLoader(ISourceLoader):
    """Loads every page of a Confluence space."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        username: str = "",
        api_token: str = "",
        space_key: str = "REF",
        page_limit: int = _PAGE_LIMIT,
        name: str = "confluence",
    ) -> None:
        self._client = http_client
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, api_token) if username else None
        self._space_key = space_key
        self._page_limit = page_limit
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def is_available(self) -> bool:
        if not self._base_url or not self._space_key:
            return False
        try:
            response = await self._client.get(
                f"{self._base_url}/rest/api/space/{self._space_key}",
                auth=self._auth or httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.HTTPError as exc:
            logger.warning("confluence_unreachable", error=str(exc))
            return False
        return response.status_code == 200

    async def load_documents(self) -> AsyncIterator[RawDocument]:
        url: str | None = f"{self._base_url}/rest/api/content"
        params: dict[str, Any] | None = {
            "spaceKey": self._space_key,
            "type": "page",
            "expand": "body.storage,version",
            "start": 0,
            "limit": self._page_limit,
        }
        pages = 0
        while url:
            data = await self._fetch(url, params)
            for page in data.get("results") or []:
                pages += 1
                yield self._to_document(page)

            links = data.get("_links") or {}
            next_link = links.get("next")
            if not next_link:
                break
            # The next link already carries the query string.
            url = f"{links.get('base') or self._base_url}{next_link}"
            params = None
        logger.info("confluence_load_complete", space=self._space_key, pages=pages)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch(self, url: str, params: dict[str, Any] | None) -> dict[str, Any]:
        try:
            response = await self._client.get(
                url, params=params, auth=self._auth or httpx.USE_CLIENT_DEFAULT
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceLoadError(
                message=f"Confluence returned HTTP {exc.response.status_code}",
                provider_name=self._name,
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceLoadError(
                message=f"Confluence request failed: {exc}",
                provider_name=self._name,
            ) from exc
        return response.json()

    def _to_document(self, page: dict[str, Any]) -> RawDocument:
        page_id = str(page.get("id", ""))
        title = page.get("title") or ""
        storage = ((page.get("body") or {}).get("storage") or {}).get("value") or ""
        body = html_to_text(storage) if storage else ""
        webui = (page.get("_links") or {}).get("webui")
        url = (
            f"{self._base_url}{webui}"
            if webui
            else f"{self._base_url}/pages/viewpage.action?pageId={page_id}"
        )

        return RawDocument(
            id=f"confluence-{page_id}",
            content=f"# {title}\n\n{body}".strip(),
            source_path=url,
            metadata={
                "title": title,
                "page_id": page_id,
                "space_key": self._space_key,
                "page_version": (page.get("version") or {}).get("number", 0),
                "url": url,
            },
        )
