"""Jira issue source loader.

Pages through ``GET /rest/api/2/search`` with basic auth and yields one
document per issue.  The issue key and summary become a Markdown heading
so the parser picks them up as the title.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import httpx
import structlog

from bankdocs.interfaces.source_loader import ISourceLoader
from bankdocs.models.documents import RawDocument
from bankdocs.utils.errors import SourceLoadError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 50
_FIELDS = "summary,description,issuetype,status,project,labels,created,updated"


class JiraLoader(ISourceLoader):
    """Loads the issues matched by a JQL query.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``.
    base_url:
        Jira base URL, e.g. ``https://jira.bank.internal``.
    username, api_token:
        Basic-auth credentials.
    jql:
        Query selecting the reference issues.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        username: str = "",
        api_token: str = "",
        jql: str = "project = REF",
        page_size: int = _PAGE_SIZE,
        name: str = "jira",
    ) -> None:
        self._client = http_client
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, api_token) if username else None
        self._jql = jql
        self._page_size = page_size
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def is_available(self) -> bool:
        if not self._base_url:
            return False
        try:
            response = await self._client.get(
                f"{self._base_url}/rest/api/2/myself", auth=self._auth or httpx.USE_CLIENT_DEFAULT
            )
        except httpx.HTTPError as exc:
            logger.warning("jira_unreachable", error=str(exc))
            return False
        return response.status_code == 200

    async def load_documents(self) -> AsyncIterator[RawDocument]:
        start_at = 0
        while True:
            data = await self._fetch_page(start_at)
            issues = data.get("issues") or []
            for issue in issues:
                yield self._to_document(issue)

            start_at += len(issues)
            total = int(data.get("total", 0))
            if not issues or start_at >= total:
                break
        logger.info("jira_load_complete", issues=start_at)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch_page(self, start_at: int) -> dict[str, Any]:
        try:
            response = await self._client.get(
                f"{self._base_url}/rest/api/2/search",
                params={
                    "jql": self._jql,
                    "startAt": start_at,
                    "maxResults": self._page_size,
                    "fields": _FIELDS,
                },
                auth=self._auth or httpx.USE_CLIENT_DEFAULT,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceLoadError(
                message=f"Jira search returned HTTP {exc.response.status_code}",
                provider_name=self._name,
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceLoadError(
                message=f"Jira search failed: {exc}",
                provider_name=self._name,
            ) from exc
        return response.json()

    def _to_document(self, issue: dict[str, Any]) -> RawDocument:
        key = issue.get("key", "")
        fields = issue.get("fields") or {}
        summary = fields.get("summary") or ""
        description = fields.get("description")
        if not isinstance(description, str):
            description = ""

        return RawDocument(
            id=key,
            content=f"# {key}: {summary}\n\n{description}".strip(),
            source_path=f"jira://{key}",
            metadata={
                "title": f"{key}: {summary}",
                "issue_key": key,
                "issue_type": (fields.get("issuetype") or {}).get("name", ""),
                "status": (fields.get("status") or {}).get("name", ""),
                "project": (fields.get("project") or {}).get("key", ""),
                "labels": ",".join(fields.get("labels") or []),
                "created": fields.get("created") or "",
                "updated": fields.get("updated") or "",
                "url": f"{self._base_url}/browse/{key}",
            },
        )
