from __future__ import annotations

from link_previews.core.config import PreviewSettings
from link_previews.core.decorations import (
    SEPARATOR,
    ErrorIndicator,
    PreviewContent,
    build_decorations,
    format_preview_text,
)
from link_previews.core.models import INSERT_AFTER, INSERT_BEFORE, MARK, REPLACE, LinkMetadata
from link_previews.core.utils import ELLIPSIS


class FakeSource:
    def __init__(self, cached: dict[str, LinkMetadata] | None = None, pending: set[str] | None = None) -> None:
        self.cached = dict(cached or {})
        self.pending = set(pending or ())
        self.requested: list[str] = []

    def get_cached_metadata(self, url: str) -> LinkMetadata | None:
        return self.cached.get(url)

    def has_pending_fetch(self, url: str) -> bool:
        return url in self.pending

    def request_fetch(self, url: str) -> None:
        self.requested.append(url)
        self.pending.add(url)


URL = "https://example.com/post"
TEXT = f"Read {URL} now"
META = LinkMetadata(
    title="A Post",
    description="About things",
    favicon="https://example.com/favicon.ico",
    site_name="Example",
)


def test_compact_replaces_match() -> None:
    source = FakeSource({URL: META})
    (deco,) = build_decorations(TEXT, PreviewSettings(), None, metadata=source)
    assert deco.kind == REPLACE
    assert TEXT[deco.start : deco.end] == URL
    assert isinstance(deco.payload, PreviewContent)
    assert deco.payload.text == f"A Post{SEPARATOR}About things"
    assert deco.payload.favicon == "https://example.com/favicon.ico"
    assert deco.payload.site_name == "Example"
    assert deco.payload.color_mode == "subtle"
    assert deco.payload.limit == 150
    assert not deco.payload.is_loading


def test_detailed_inserts_before_and_marks() -> None:
    source = FakeSource({URL: META})
    settings = PreviewSettings(preview_style="detailed")
    insert, mark = build_decorations(TEXT, settings, TEXT.index(URL) + 2, metadata=source)
    assert insert.kind == INSERT_BEFORE
    assert insert.start == insert.end == TEXT.index(URL)
    assert mark.kind == MARK
    assert TEXT[mark.start : mark.end] == URL
    assert insert.payload.color_mode == "none"
    assert insert.payload.limit == 300


def test_compact_skips_match_under_cursor() -> None:
    source = FakeSource({URL: META})
    start = TEXT.index(URL)
    assert build_decorations(TEXT, PreviewSettings(), start, metadata=source) == []
    assert build_decorations(TEXT, PreviewSettings(), start + len(URL), metadata=source) == []
    assert len(build_decorations(TEXT, PreviewSettings(), 0, metadata=source)) == 1


def test_error_appends_indicator_after_url() -> None:
    source = FakeSource({URL: LinkMetadata(error="network:Request timed out")})
    (deco,) = build_decorations(TEXT, PreviewSettings(), None, metadata=source)
    end = TEXT.index(URL) + len(URL)
    assert deco.kind == INSERT_AFTER
    assert (deco.start, deco.end) == (end, end)
    assert isinstance(deco.payload, ErrorIndicator)
    assert deco.payload.tooltip.startswith("Network error")

    http = ErrorIndicator(url=URL, error="http:404")
    assert http.tooltip.startswith("HTTP error (404)")


def test_unknown_urls_are_requested_and_shown_loading() -> None:
    source = FakeSource()
    (deco,) = build_decorations(TEXT, PreviewSettings(), None, metadata=source, request_fetch=source.request_fetch)
    assert source.requested == [URL]
    assert deco.payload.is_loading
    assert deco.payload.title == "example.com"


def test_unknown_urls_without_fetch_emit_nothing() -> None:
    assert build_decorations(TEXT, PreviewSettings(), None, metadata=FakeSource()) == []


def test_pending_urls_are_not_requested_twice() -> None:
    source = FakeSource(pending={URL})
    build_decorations(TEXT, PreviewSettings(), None, metadata=source, request_fetch=source.request_fetch)
    assert source.requested == []


def test_display_text_used_when_metadata_has_no_title() -> None:
    text = f"[my notes]({URL})"
    source = FakeSource({URL: LinkMetadata(description="desc here")})
    (deco,) = build_decorations(text, PreviewSettings(), None, metadata=source)
    assert deco.payload.title == "my notes"


def test_page_config_switches_style_only_when_passed_in() -> None:
    source = FakeSource({URL: META})
    settings = PreviewSettings(require_page_config=True)
    assert build_decorations(TEXT, settings, None, metadata=source) == []
    text = f"---\nstyle: compact\n---\n{TEXT}"
    assert len(build_decorations(text, settings, None, metadata=source)) == 1


def test_favicon_hidden_and_emoji_stripped() -> None:
    source = FakeSource({URL: LinkMetadata(title="Launch \U0001F680 day", favicon="https://example.com/f.ico")})
    settings = PreviewSettings(show_favicon=False, keep_emoji=False)
    (deco,) = build_decorations(TEXT, settings, None, metadata=source)
    assert deco.payload.title == "Launch day"
    assert deco.payload.favicon is None


def test_decorations_sorted_and_disjoint() -> None:
    urls = ["https://a.example", "https://b.example", "https://c.example"]
    text = " ".join(urls)
    source = FakeSource(
        {
            urls[0]: LinkMetadata(title="A"),
            urls[2]: LinkMetadata(error="http:500"),
        },
        pending={urls[1]},
    )
    decos = build_decorations(text, PreviewSettings(preview_style="detailed"), None, metadata=source)
    starts = [d.start for d in decos]
    assert starts == sorted(starts)
    kinds = [d.kind for d in decos]
    assert kinds.count(INSERT_AFTER) == 1
    assert kinds.count(MARK) == 2


def test_format_title_over_budget_drops_description() -> None:
    title, description = format_preview_text("x" * 40, "some description", 20)
    assert len(title) == 20
    assert title.endswith(ELLIPSIS)
    assert description is None


def test_format_truncates_description_to_fit() -> None:
    title, description = format_preview_text("Title", "d" * 100, 40)
    assert title == "Title"
    assert description is not None and description.endswith(ELLIPSIS)
    assert len(title) + len(SEPARATOR) + len(description) == 40


def test_format_drops_short_remainder_and_duplicates() -> None:
    assert format_preview_text("Title of twenty chars", "long description text", 30) == ("Title of twenty chars", None)
    assert format_preview_text("Same", "same", 100) == ("Same", None)
    assert format_preview_text("Title", "desc", 100, include_description=False) == ("Title", None)


def test_format_never_exceeds_budget() -> None:
    titles = ["", "T", "A medium title", "t" * 80]
    descriptions = [None, "", "d", "A description of moderate length", "z" * 300]
    for budget in (1, 5, 13, 14, 30, 80, 150):
        for t in titles:
            for d in descriptions:
                title, desc = format_preview_text(t or "x", d, budget)
                rendered = f"{title}{SEPARATOR}{desc}" if desc else title
                assert len(rendered) <= budget
