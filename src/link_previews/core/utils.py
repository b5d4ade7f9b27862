from __future__ import annotations

import html
import re

from yarl import URL


ELLIPSIS = "…"

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
# Covers the common pictographic blocks; `re` has no Extended_Pictographic class.
_EMOJI_RE = re.compile(
    "["
    "\U0001F300-\U0001FAFF"
    "\U0001F600-\U0001F64F"
    "\U00002600-\U000027BF"
    "\U0001F1E6-\U0001F1FF"
    "\U0000FE0F"
    "\U0000200D"
    "]"
)


def normalize_url(url: str) -> str:
    return (url or "").strip()


def parse_url(url: str) -> URL | None:
    try:
        parsed = URL(normalize_url(url))
    except (TypeError, ValueError):
        return None
    if not parsed.is_absolute() or not parsed.host:
        return None
    return parsed


def origin_of(url: str) -> str | None:
    """Return ``scheme://host[:port]`` for ``url``, or None when it has no host."""

    parsed = parse_url(url)
    if parsed is None:
        return None
    return str(parsed.origin())


def hostname_title(url: str) -> str:
    parsed = parse_url(url)
    if parsed is None or not parsed.host:
        return url
    host = parsed.host
    if host.lower().startswith("www."):
        host = host[4:]
    return host or str(parsed)


def collapse_whitespace(value: str) -> str:
    return _WS_RE.sub(" ", value).strip()


def sanitize_text(value: str | None) -> str:
    if not value:
        return ""
    decoded = html.unescape(value) if "&" in value else value
    return collapse_whitespace(_TAG_RE.sub(" ", decoded))


def sanitize_or_none(value: str | None) -> str | None:
    cleaned = sanitize_text(value)
    return cleaned or None


def strip_emoji(value: str) -> str:
    return collapse_whitespace(_EMOJI_RE.sub("", value))


def truncate(text: str, max_length: int) -> str:
    """Shorten ``text`` to at most ``max_length`` characters, ellipsis included."""

    if len(text) <= max_length:
        return text
    if max_length <= 0:
        return ""
    return text[: max_length - 1].rstrip() + ELLIPSIS


def equals_ignore_case(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()
