from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, Union

from link_previews.core.config import PreviewSettings
from link_previews.core.matching import CodeRegionCheck, scan
from link_previews.core.models import (
    INSERT_AFTER,
    INSERT_BEFORE,
    MARK,
    REPLACE,
    STYLE_DETAILED,
    LinkMetadata,
    UrlMatch,
)
from link_previews.core.page_config import has_page_config
from link_previews.core.utils import equals_ignore_case, hostname_title, strip_emoji, truncate


SEPARATOR = " — "
MIN_DESCRIPTION_LENGTH = 10


class MetadataSource(Protocol):
    def get_cached_metadata(self, url: str) -> LinkMetadata | None: ...

    def has_pending_fetch(self, url: str) -> bool: ...


@dataclass(frozen=True)
class PreviewContent:
    url: str
    title: str
    description: str | None
    favicon: str | None
    site_name: str | None
    is_loading: bool
    style: str
    color_mode: str
    limit: int

    @property
    def text(self) -> str:
        if self.description:
            return f"{self.title}{SEPARATOR}{self.description}"
        return self.title


@dataclass(frozen=True)
class ErrorIndicator:
    url: str
    error: str

    @property
    def is_network_error(self) -> bool:
        return self.error.startswith("network:")

    @property
    def tooltip(self) -> str:
        if self.is_network_error:
            return f"Network error at {self.url}. Cannot generate preview."
        detail = self.error.split(":", 1)[-1]
        return f"HTTP error ({detail}) at {self.url}. Cannot generate preview."


Payload = Union[PreviewContent, ErrorIndicator, None]


@dataclass(frozen=True)
class Decoration:
    start: int
    end: int
    kind: str
    payload: Payload = None


def format_preview_text(
    title: str,
    description: str | None,
    limit: int,
    *,
    include_description: bool = True,
) -> tuple[str, str | None]:
    """Fit ``title`` and ``description`` into ``limit`` characters.

    The title always wins: if it alone is over budget it is truncated and the
    description dropped. Otherwise the description gets what is left after the
    separator, or nothing when fewer than ``MIN_DESCRIPTION_LENGTH`` remain.
    """

    if not include_description or not description or equals_ignore_case(description, title):
        description = None

    if len(title) > limit:
        return truncate(title, limit), None
    if description is None:
        return title, None

    if len(title) + len(SEPARATOR) + len(description) <= limit:
        return title, description

    available = limit - len(title) - len(SEPARATOR)
    if available < MIN_DESCRIPTION_LENGTH:
        return title, None
    return title, truncate(description, available)


def _display_title(match: UrlMatch, metadata: LinkMetadata | None, keep_emoji: bool) -> str:
    candidates = [
        metadata.title if metadata else None,
        match.display_text,
        hostname_title(match.url),
    ]
    for candidate in candidates:
        if not candidate:
            continue
        value = candidate if keep_emoji else strip_emoji(candidate)
        if value:
            return value
    return match.url


def _preview_content(
    match: UrlMatch,
    metadata: LinkMetadata | None,
    settings: PreviewSettings,
    *,
    is_loading: bool,
) -> PreviewContent:
    limit = settings.length_limit()
    title = _display_title(match, metadata, settings.keep_emoji)
    description = metadata.description if metadata else None
    if description and not settings.keep_emoji:
        description = strip_emoji(description) or None

    title, description = format_preview_text(
        title,
        description,
        limit,
        include_description=settings.include_description,
    )
    return PreviewContent(
        url=match.url,
        title=title,
        description=description,
        favicon=metadata.favicon if metadata and settings.show_favicon else None,
        site_name=metadata.site_name if metadata else None,
        is_loading=is_loading,
        style=settings.preview_style,
        color_mode=settings.color_mode(),
        limit=limit,
    )


def _decorate_match(
    match: UrlMatch,
    metadata: LinkMetadata | None,
    settings: PreviewSettings,
    is_loading: bool,
) -> list[Decoration]:
    if metadata is not None and metadata.error:
        return [Decoration(match.end, match.end, INSERT_AFTER, ErrorIndicator(url=match.url, error=metadata.error))]

    content = _preview_content(match, metadata, settings, is_loading=is_loading)
    if settings.preview_style == STYLE_DETAILED:
        return [
            Decoration(match.start, match.start, INSERT_BEFORE, content),
            Decoration(match.start, match.end, MARK),
        ]
    return [Decoration(match.start, match.end, REPLACE, content)]


def build_decorations(
    text: str,
    settings: PreviewSettings,
    cursor: int | None,
    *,
    metadata: MetadataSource,
    is_inside_code_region: CodeRegionCheck | None = None,
    request_fetch: Callable[[str], None] | None = None,
) -> list[Decoration]:
    """Plan the decorations for one render pass over ``text``.

    ``settings`` must already be the effective settings for this document.
    ``request_fetch`` is called for URLs with neither cached metadata nor a
    fetch in flight; whether those show a loading placeholder on this pass
    depends on whether the callback registered a pending fetch.
    """

    if settings.require_page_config and not has_page_config(text):
        return []

    detailed = settings.preview_style == STYLE_DETAILED
    out: list[Decoration] = []
    for match in scan(text, is_inside_code_region):
        if not detailed and cursor is not None and match.start <= cursor <= match.end:
            continue

        cached = metadata.get_cached_metadata(match.url)
        if cached is None and request_fetch is not None and not metadata.has_pending_fetch(match.url):
            request_fetch(match.url)

        is_loading = cached is None and metadata.has_pending_fetch(match.url)
        if cached is None and not is_loading:
            continue
        out.extend(_decorate_match(match, cached, settings, is_loading))

    out.sort(key=lambda d: (d.start, d.end))
    return out
