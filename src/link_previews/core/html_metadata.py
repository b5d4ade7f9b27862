from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from link_previews.core.utils import sanitize_or_none

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedMetadata:
    title: str | None = None
    description: str | None = None
    site_name: str | None = None
    favicon: str | None = None


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> str | None:
    for tag in soup.find_all("meta"):
        key = tag.get(attr)
        if isinstance(key, str) and key.strip().lower() == value:
            content = tag.get("content")
            if isinstance(content, str):
                return content
    return None


def _first_non_empty(values: Iterable[str | None]) -> str | None:
    for value in values:
        cleaned = sanitize_or_none(value)
        if cleaned:
            return cleaned
    return None


def _search_json_ld(value: Any) -> tuple[str | None, str | None] | None:
    if isinstance(value, list):
        for item in value:
            found = _search_json_ld(item)
            if found:
                return found
        return None
    if not isinstance(value, dict):
        return None

    title = _string_field(value, ("name", "headline", "title"))
    description = _string_field(value, ("description", "summary"))
    if title or description:
        return title, description
    for nested in value.values():
        found = _search_json_ld(nested)
        if found:
            return found
    return None


def _string_field(record: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        candidate = record.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _json_ld(soup: BeautifulSoup) -> tuple[str | None, str | None]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            continue
        found = _search_json_ld(data)
        if found:
            return found
    return None, None


def _favicon_candidates(soup: BeautifulSoup) -> list[str]:
    out: list[str] = []
    for link in soup.find_all("link"):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        rels = {r.lower() for r in rel}
        if not any("icon" in r for r in rels):
            continue
        href = link.get("href")
        if isinstance(href, str) and href.strip():
            out.append(href.strip())
    return out


def parse_html_metadata(html: str, base_url: str) -> ParsedMetadata:
    """Extract preview fields from an HTML page.

    Priority per field is OpenGraph, then Twitter card, then standard meta
    tags / ``<title>``, then JSON-LD.
    """

    soup = BeautifulSoup(html or "", "lxml")
    ld_title, ld_description = _json_ld(soup)

    doc_title = soup.title.get_text() if soup.title else None
    title = _first_non_empty(
        [
            _meta_content(soup, "property", "og:title"),
            _meta_content(soup, "name", "twitter:title"),
            _meta_content(soup, "property", "twitter:title"),
            _meta_content(soup, "name", "title"),
            doc_title,
            ld_title,
        ]
    )
    description = _first_non_empty(
        [
            _meta_content(soup, "property", "og:description"),
            _meta_content(soup, "name", "twitter:description"),
            _meta_content(soup, "property", "twitter:description"),
            _meta_content(soup, "name", "description"),
            ld_description,
        ]
    )
    site_name = _first_non_empty(
        [
            _meta_content(soup, "property", "og:site_name"),
            _meta_content(soup, "name", "application-name"),
        ]
    )

    favicon = None
    for candidate in _favicon_candidates(soup):
        try:
            favicon = urljoin(base_url, candidate)
        except ValueError:
            continue
        if favicon:
            break

    return ParsedMetadata(title=title, description=description, site_name=site_name, favicon=favicon)
