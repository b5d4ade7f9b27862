from __future__ import annotations

from link_previews.core.matching import (
    CodeRegions,
    find_bare_urls,
    is_in_bracketed_link,
    ranges_overlap,
    scan,
)
from link_previews.core.models import BARE_URL, BRACKETED_LINK, DOUBLE_BRACKET


def test_bare_url_preceded_by_whitespace() -> None:
    text = "See https://example.com for info"
    matches = scan(text)
    assert len(matches) == 1
    m = matches[0]
    assert m.syntax == BARE_URL
    assert m.url == "https://example.com"
    assert text[m.start : m.end] == "https://example.com"


def test_url_label_with_non_web_target_spans_whole_expression() -> None:
    text = "[https://example.com](notes)"
    matches = scan(text)
    assert len(matches) == 1
    m = matches[0]
    assert m.syntax == BRACKETED_LINK
    assert m.display_text is None
    assert (m.start, m.end) == (0, len(text))


def test_label_equal_to_url_has_no_display_text() -> None:
    text = "[https://example.com](https://example.com)"
    (m,) = scan(text)
    assert m.display_text is None
    assert m.url == "https://example.com"


def test_bracketed_link_keeps_custom_label() -> None:
    text = "Read [the docs](https://docs.example.org/guide) today"
    (m,) = scan(text)
    assert m.syntax == BRACKETED_LINK
    assert m.display_text == "the docs"
    assert m.url == "https://docs.example.org/guide"
    assert text[m.start : m.end] == "[the docs](https://docs.example.org/guide)"


def test_inline_code_yields_no_matches() -> None:
    assert scan("`https://example.com`") == []


def test_fenced_code_block_is_excluded() -> None:
    text = "before https://a.example\n```\nhttps://b.example\n```\nafter https://c.example"
    urls = [m.url for m in scan(text)]
    assert urls == ["https://a.example", "https://c.example"]


def test_external_code_region_check_is_consulted() -> None:
    text = "https://a.example and https://b.example"
    urls = [m.url for m in scan(text, lambda offset: offset == 0)]
    assert urls == ["https://b.example"]


def test_double_bracket_takes_precedence_over_bare() -> None:
    text = "x [[https://example.com/page]] y"
    (m,) = scan(text)
    assert m.syntax == DOUBLE_BRACKET
    assert m.url == "https://example.com/page"
    assert text[m.start : m.end] == "[[https://example.com/page]]"


def test_image_links_are_skipped() -> None:
    assert scan("![logo](https://example.com/logo.png)") == []


def test_bare_url_must_not_start_mid_token() -> None:
    assert scan("prefixhttps://example.com") == []


def test_matches_are_in_document_order_and_disjoint() -> None:
    text = "https://z.example [a](https://y.example) [[https://x.example]]"
    matches = scan(text)
    assert [m.syntax for m in matches] == [BARE_URL, BRACKETED_LINK, DOUBLE_BRACKET]
    for a, b in zip(matches, matches[1:]):
        assert a.end <= b.start


def test_bare_url_inside_link_target_is_rejected() -> None:
    text = "[label](see https://example.com)"
    assert is_in_bracketed_link(text, text.index("https"), text.index(")"))
    assert list(find_bare_urls(text)) == []


def test_ranges_overlap_is_half_open() -> None:
    assert ranges_overlap(0, 5, 4, 8)
    assert not ranges_overlap(0, 5, 5, 8)


def test_code_regions_unclosed_fence_runs_to_end() -> None:
    text = "a\n```\nhttps://example.com"
    regions = CodeRegions.from_text(text)
    assert regions.is_inside(text.index("https"))
    assert not regions.is_inside(0)


def test_unmatched_backtick_does_not_swallow_later_paragraphs() -> None:
    text = "A stray ` backtick here.\n\nSee https://example.com for info\n\nand `code` later"
    assert [m.url for m in scan(text)] == ["https://example.com"]


def test_backticks_in_info_string_are_not_a_fence() -> None:
    text = "```js``` is inline code\n\nSee https://example.com for info\n"
    assert [m.url for m in scan(text)] == ["https://example.com"]


def test_tilde_fence_allows_backticks_in_info_string() -> None:
    text = "~~~ `lang`\nhttps://hidden.example\n~~~\nhttps://shown.example"
    assert [m.url for m in scan(text)] == ["https://shown.example"]


def test_inline_code_spans_single_line_break() -> None:
    text = "`wrapped\nhttps://example.com` tail"
    assert scan(text) == []


def test_code_regions_do_not_overlap_across_fences() -> None:
    text = "open ` tick\n```\nhttps://a.example `\n```\nclose ` https://b.example"
    regions = CodeRegions.from_text(text)
    for (s1, e1), (s2, e2) in zip(regions.spans, regions.spans[1:]):
        assert e1 <= s2
    assert regions.is_inside(text.index("https://a.example"))
    assert [m.url for m in scan(text)] == ["https://b.example"]
