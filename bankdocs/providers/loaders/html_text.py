"""HTML to plain text conversion shared by the HTML-reading loaders.

Keeps just enough structure for the chunker: headings become Markdown
``#`` lines and list items become ``-`` bullets.  Scripts, styles and
navigation are dropped.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

_DROPPED_TAGS = ("script", "style", "nav", "noscript", "template")
_BLOCK_TAGS = (
    "p",
    "div",
    "section",
    "article",
    "table",
    "tr",
    "pre",
    "blockquote",
    "ul",
    "ol",
)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def html_to_text(html: str | BeautifulSoup) -> str:
    """Convert *html* (markup or an already parsed soup) to structured text."""
    soup = parse_html(html) if isinstance(html, str) else html

    for tag in soup(list(_DROPPED_TAGS)):
        tag.decompose()

    for level in range(1, 7):
        for heading in soup.find_all(f"h{level}"):
            text = heading.get_text(" ", strip=True)
            heading.replace_with(f"\n\n{'#' * level} {text}\n\n" if text else "")

    for item in soup.find_all("li"):
        text = item.get_text(" ", strip=True)
        item.replace_with(f"\n- {text}\n" if text else "")

    for br in soup.find_all("br"):
        br.replace_with("\n")

    for block in soup.find_all(list(_BLOCK_TAGS)):
        block.insert_before("\n")
        block.insert_after("\n")

    body = soup.body or soup
    lines = [re.sub(r"[ \t\xa0]+", " ", line).strip() for line in body.get_text().splitlines()]
    text = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def extract_page_metadata(soup: BeautifulSoup) -> dict[str, str]:
    """Return ``title``, ``description`` and ``author`` from the document head."""

    def _meta(*names: str) -> str:
        for name in names:
            tag = soup.find("meta", attrs={"name": name}) or soup.find(
                "meta", attrs={"property": name}
            )
            if tag and tag.get("content"):
                return str(tag["content"]).strip()
        return ""

    title = soup.title.get_text(strip=True) if soup.title else ""
    return {
        "title": title or _meta("og:title"),
        "description": _meta("description", "og:description"),
        "author": _meta("author", "article:author"),
    }
