from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from link_previews.core.models import BARE_URL, BRACKETED_LINK, DOUBLE_BRACKET, UrlMatch

logger = logging.getLogger(__name__)


CodeRegionCheck = Callable[[int], bool]

# How far to look around a bare URL for an enclosing `[label](...)`.
LINK_CONTEXT_BACKWARD = 1000
LINK_CONTEXT_FORWARD = 100

_DOUBLE_BRACKET_RE = re.compile(r"\[\[(https?://[^\]]+)\]\]")
_BRACKETED_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_HTTP_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)
_BARE_URL_RE = re.compile(r"https?://[^\s)\]]+")

# A backtick fence's info string may not contain backticks ("```js``` x" is inline code).
_FENCE_OPEN_RE = re.compile(r"^[ \t]{0,3}(?:(`{3,})[^`\n]*|(~{3,})[^\n]*)$", re.MULTILINE)
_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")
_INLINE_CODE_RE = re.compile(r"(?<!`)(`+)(?!`)(.+?)(?<!`)\1(?!`)", re.DOTALL)


@dataclass(frozen=True)
class CodeRegions:
    """Sorted, non-overlapping ``[start, end)`` spans of fenced blocks and inline code."""

    spans: tuple[tuple[int, int], ...]

    @classmethod
    def from_text(cls, text: str) -> CodeRegions:
        fences = list(_fence_spans(text))
        spans = list(fences)
        # Code spans never cross a fence or a blank line.
        for block_start, block_end in _paragraphs(text, fences):
            block = text[block_start:block_end]
            for m in _INLINE_CODE_RE.finditer(block):
                spans.append((block_start + m.start(), block_start + m.end()))
        spans.sort()
        return cls(spans=tuple(spans))

    def is_inside(self, offset: int) -> bool:
        idx = bisect.bisect_right(self.spans, (offset, float("inf"))) - 1
        if idx < 0:
            return False
        start, end = self.spans[idx]
        return start <= offset < end


def _fence_spans(text: str) -> Iterator[tuple[int, int]]:
    pos = 0
    while True:
        opening = _FENCE_OPEN_RE.search(text, pos)
        if not opening:
            return
        marker = opening.group(1) or opening.group(2)
        close_re = re.compile(
            rf"^[ \t]{{0,3}}{re.escape(marker[0])}{{{len(marker)},}}[ \t]*$",
            re.MULTILINE,
        )
        closing = close_re.search(text, opening.end() + 1)
        if not closing:
            # An unclosed fence runs to the end of the document.
            yield opening.start(), len(text)
            return
        yield opening.start(), closing.end()
        pos = closing.end()


def _paragraphs(text: str, fences: list[tuple[int, int]]) -> Iterator[tuple[int, int]]:
    """Yield ``[start, end)`` ranges of text between fences, split at blank lines."""

    pos = 0
    for fence_start, fence_end in fences + [(len(text), len(text))]:
        for m in _PARAGRAPH_BREAK_RE.finditer(text, pos, fence_start):
            yield pos, m.start()
            pos = m.end()
        yield pos, fence_start
        pos = fence_end


def ranges_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    return start1 < end2 and start2 < end1


def is_in_bracketed_link(text: str, url_start: int, url_end: int) -> bool:
    """Heuristic: is ``text[url_start:url_end]`` the target of a ``[label](...)`` link?

    Looks back for the nearest ``](`` and forward for a ``)`` with no ``[`` in
    between. Image targets (``![alt](url)``) also count.
    """

    search_start = max(0, url_start - LINK_CONTEXT_BACKWARD)
    before = text[search_start:url_start]
    opener = before.rfind("](")
    if opener != -1:
        after = text[url_end : min(len(text), url_end + LINK_CONTEXT_FORWARD)]
        closer = after.find(")")
        if closer != -1:
            between = before[opener + 2 :] + text[url_start:url_end] + after[:closer]
            if "[" not in between:
                return True

    lead = text[max(0, url_start - 3) : url_start]
    if lead.endswith("](") and url_start >= 4 and text[url_start - 4] == "!":
        return True
    return False


def find_double_bracket_links(text: str) -> Iterator[UrlMatch]:
    for m in _DOUBLE_BRACKET_RE.finditer(text):
        yield UrlMatch(url=m.group(1), start=m.start(), end=m.end(), syntax=DOUBLE_BRACKET)


def find_bracketed_links(text: str) -> Iterator[UrlMatch]:
    for m in _BRACKETED_RE.finditer(text):
        if m.start() > 0 and text[m.start() - 1] == "!":
            continue
        label, target = m.group(1), m.group(2)
        if _HTTP_URL_RE.match(target):
            display = label if label != target else None
            yield UrlMatch(url=target, start=m.start(), end=m.end(), syntax=BRACKETED_LINK, display_text=display)
        elif _HTTP_URL_RE.match(label.strip()):
            # A URL used as the label of a non-web target: the label is the link.
            yield UrlMatch(url=label.strip(), start=m.start(), end=m.end(), syntax=BRACKETED_LINK)


def find_bare_urls(text: str, claimed: Iterable[UrlMatch] = ()) -> Iterator[UrlMatch]:
    """Yield bare ``http(s)://`` URLs preceded by start-of-text or whitespace.

    Candidates overlapping ``claimed`` or sitting inside a bracketed link are
    skipped.
    """

    taken = [(c.start, c.end) for c in claimed]
    for m in _BARE_URL_RE.finditer(text):
        start, end = m.start(), m.end()
        if any(ranges_overlap(start, end, s, e) for s, e in taken):
            continue
        if start > 0 and not text[start - 1].isspace():
            continue
        if is_in_bracketed_link(text, start, end):
            continue
        yield UrlMatch(url=m.group(0), start=start, end=end, syntax=BARE_URL)


def scan(text: str, is_inside_code_region: CodeRegionCheck | None = None) -> list[UrlMatch]:
    """Return the URL occurrences of ``text`` in document order.

    Syntaxes are tried in precedence order (double-bracket, bracketed link,
    bare URL); a candidate whose range collides with an accepted one is
    dropped. A range claimed by a match in a code region still blocks later
    syntaxes, but the match itself is discarded.
    """

    if is_inside_code_region is None:
        is_inside_code_region = CodeRegions.from_text(text).is_inside

    accepted: list[UrlMatch] = []
    claimed: list[UrlMatch] = []
    seen_keys: set[str] = set()

    def consider(candidate: UrlMatch) -> None:
        if candidate.range_key in seen_keys:
            return
        if any(ranges_overlap(candidate.start, candidate.end, c.start, c.end) for c in claimed):
            return
        seen_keys.add(candidate.range_key)
        claimed.append(candidate)
        if is_inside_code_region(candidate.start):
            return
        accepted.append(candidate)

    for candidate in find_double_bracket_links(text):
        consider(candidate)
    for candidate in find_bracketed_links(text):
        consider(candidate)
    for candidate in find_bare_urls(text, claimed):
        consider(candidate)

    accepted.sort(key=lambda m: m.start)
    logger.debug("scan found %d url(s) (%d claimed)", len(accepted), len(claimed))
    return accepted
