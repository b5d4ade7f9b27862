from __future__ import annotations

from link_previews.core.html_metadata import ParsedMetadata


TITLE_ERROR_PATTERNS = ("404", "not found", "page not found", "404 error")
_TITLE_PATTERN_SUFFIXES = (" ", "|", "-", ":")


def _title_signals_missing(title: str) -> bool:
    for pattern in TITLE_ERROR_PATTERNS:
        if title == pattern:
            return True
        if any(title.startswith(pattern + s) for s in _TITLE_PATTERN_SUFFIXES):
            return True
    return False


def is_soft_404(html: str, metadata: ParsedMetadata, url: str) -> bool:
    """Detect a 200 response whose content says the resource is gone.

    Generic checks only look at the title prefix; full-page phrases are used
    for platforms known to serve removal pages with status 200.
    """

    page = (html or "").lower()
    title = (metadata.title or "").strip().lower()
    description = (metadata.description or "").lower()
    u = url.lower()

    if "reddit.com" in u:
        if (
            "page not found" in title
            or "this community doesn't exist" in title
            or "page not found" in description
            or "sorry, nobody on reddit goes by that name" in page
        ):
            return True

    if "youtube.com" in u or "youtu.be" in u:
        if (
            "video unavailable" in title
            or "video isn't available" in description
            or "video has been removed" in description
            or "this video isn't available" in page
        ):
            return True

    return _title_signals_missing(title)
