from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace

from link_previews.core.config import (
    PreviewSettings,
    normalize_color_mode,
    normalize_style,
    valid_length_limit,
)


BLOCK_DELIMITER = "---"

_LINE_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9_-]*)\s*:\s*(.*?)\s*$")
_INT_RE = re.compile(r"^\d+$")

# Document keys -> PageConfig field.
_KEY_FIELDS = {
    "preview-style": "preview_style",
    "style": "preview_style",
    "max-card-length": "max_card_length",
    "max-inline-length": "max_inline_length",
    "show-favicon": "show_favicon",
    "include-description": "include_description",
    "inline-color-mode": "inline_color_mode",
    "card-color-mode": "card_color_mode",
}


@dataclass(frozen=True)
class PageConfig:
    """Per-document overrides; ``None`` means "use the global value"."""

    preview_style: str | None = None
    max_card_length: int | None = None
    max_inline_length: int | None = None
    show_favicon: bool | None = None
    include_description: bool | None = None
    inline_color_mode: str | None = None
    card_color_mode: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def _parse_bool(value: str) -> bool | None:
    v = value.strip().lower()
    if v == "true":
        return True
    if v == "false":
        return False
    return None


def _parse_limit(value: str) -> int | None:
    if not _INT_RE.match(value.strip()):
        return None
    return valid_length_limit(int(value.strip()))


_PARSERS = {
    "preview_style": normalize_style,
    "max_card_length": _parse_limit,
    "max_inline_length": _parse_limit,
    "show_favicon": _parse_bool,
    "include_description": _parse_bool,
    "inline_color_mode": normalize_color_mode,
    "card_color_mode": normalize_color_mode,
}


def _block_lines(text: str) -> list[str] | None:
    lines = text.splitlines()
    if not lines or lines[0].strip() != BLOCK_DELIMITER:
        return None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == BLOCK_DELIMITER:
            return lines[1:idx]
    return None


def parse_page_config(text: str) -> PageConfig:
    """Read overrides from a ``---`` block on the first line of ``text``.

    Each recognised key is validated on its own: an invalid value drops only
    that key. Unknown keys are skipped.
    """

    lines = _block_lines(text or "")
    if lines is None:
        return PageConfig()

    values: dict[str, object] = {}
    for line in lines:
        m = _LINE_RE.match(line)
        if not m:
            continue
        field_name = _KEY_FIELDS.get(m.group(1).lower())
        if field_name is None:
            continue
        parsed = _PARSERS[field_name](m.group(2))
        if parsed is not None:
            values[field_name] = parsed
    return PageConfig(**values)


def has_page_config(text: str) -> bool:
    return not parse_page_config(text).is_empty()


def merge_settings(global_settings: PreviewSettings, page: PageConfig) -> PreviewSettings:
    overrides = {f.name: getattr(page, f.name) for f in fields(page) if getattr(page, f.name) is not None}
    if not overrides:
        return global_settings
    return replace(global_settings, **overrides)


def effective_settings(text: str, global_settings: PreviewSettings) -> PreviewSettings:
    return merge_settings(global_settings, parse_page_config(text))
