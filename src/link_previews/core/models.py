from __future__ import annotations

from dataclasses import dataclass


DOUBLE_BRACKET = "double_bracket"
BRACKETED_LINK = "bracketed_link"
BARE_URL = "bare_url"

# Fixed precedence used when two syntaxes claim the same text.
SYNTAX_PRECEDENCE = (DOUBLE_BRACKET, BRACKETED_LINK, BARE_URL)

STYLE_COMPACT = "compact"
STYLE_DETAILED = "detailed"

REPLACE = "replace"
INSERT_BEFORE = "insert_before"
INSERT_AFTER = "insert_after"
MARK = "mark"


@dataclass(frozen=True)
class UrlMatch:
    url: str
    start: int
    end: int
    syntax: str
    display_text: str | None = None

    @property
    def range_key(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class LinkMetadata:
    title: str | None = None
    description: str | None = None
    favicon: str | None = None
    site_name: str | None = None
    error: str | None = None


@dataclass
class MetadataDraft:
    """Mutable metadata under construction.

    Enrichment handlers edit the draft in place; the service freezes it into a
    :class:`LinkMetadata` before it reaches the cache.
    """

    title: str | None = None
    description: str | None = None
    favicon: str | None = None
    site_name: str | None = None
    error: str | None = None

    def freeze(self) -> LinkMetadata:
        return LinkMetadata(
            title=self.title,
            description=self.description,
            favicon=self.favicon,
            site_name=self.site_name,
            error=self.error,
        )
