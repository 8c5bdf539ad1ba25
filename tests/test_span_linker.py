import pytest

from html_tokens import TagState, iter_tokens, split_tags
from span_linker import build_text_pattern, link_span

URL = "https://example.com/paper"


def test_split_tags_round_trips() -> None:
    html = '<p>Hello <i>world</i> &amp; <a href="x">more</a></p>'
    tokens = split_tags(html)
    assert "".join(tokens) == html
    assert "<i>" in tokens and "world" in tokens


def test_split_tags_keeps_lone_less_than_in_text() -> None:
    tokens = split_tags('a < b <a href="x">c</a>')
    assert tokens[:3] == ["a < b ", '<a href="x">', "c"]


def test_tag_state_tracks_anchor_script_style() -> None:
    state = TagState()
    state.update('<A HREF="x">')
    assert state.in_anchor and state.protected
    state.update("</a>")
    state.update("<script type='text/javascript'>")
    assert state.in_script
    state.update("</SCRIPT>")
    state.update("<style>")
    assert state.in_style
    state.update("</style>")
    assert not state.protected


def test_iter_tokens_marks_protected_text() -> None:
    html = 'a<a href="x">b</a><script>c</script>d'
    editable = [token for _, token, ok in iter_tokens(html) if ok]
    assert editable == ["a", "d"]


def test_pattern_matches_escaped_ampersand() -> None:
    pattern = build_text_pattern("Tom & Jerry")
    assert pattern is not None
    assert pattern.search("Tom &amp; Jerry")
    assert pattern.search("Tom &#38; Jerry")
    assert pattern.search("Tom &#x26; Jerry")
    assert not pattern.search("Tom & Jerry")


@pytest.mark.parametrize("rendered", ["say &quot;hi&quot;", 'say "hi"', "say &#34;hi&#34;"])
def test_pattern_matches_raw_or_escaped_quotes(rendered: str) -> None:
    pattern = build_text_pattern('say "hi"')
    assert pattern is not None
    assert pattern.search(rendered)


def test_pattern_tolerates_whitespace_changes() -> None:
    pattern = build_text_pattern("On the\n  Enumeration")
    assert pattern is not None
    assert pattern.search("On the Enumeration")


@pytest.mark.parametrize("text", ["", "   "])
def test_pattern_build_fails_for_blank_text(text: str) -> None:
    assert build_text_pattern(text) is None


def test_link_span_lifts_anchor_around_italic_title() -> None:
    html = "Doe, J. (2023). <i>On the Enumeration of Widgets</i>. J. Widget Sci."
    out = link_span(html, "On the Enumeration of Widgets", URL)
    assert out == (
        f'Doe, J. (2023). <a href="{URL}"><i>On the Enumeration of Widgets</i></a>. J. Widget Sci.'
    )


def test_link_span_wraps_partial_text_inside_token() -> None:
    html = "Doe, J. (2023). On Widgets. J. Widget Sci."
    out = link_span(html, "On Widgets", URL)
    assert out == f'Doe, J. (2023). <a href="{URL}">On Widgets</a>. J. Widget Sci.'


def test_link_span_matches_escaped_title() -> None:
    html = "<i>Cats &amp; Dogs &lt;3</i>"
    out = link_span(html, "Cats & Dogs <3", URL)
    assert out == f'<a href="{URL}"><i>Cats &amp; Dogs &lt;3</i></a>'


def test_link_span_is_case_insensitive() -> None:
    html = "<i>On the enumeration of widgets</i>"
    out = link_span(html, "On the Enumeration of Widgets", URL)
    assert out.startswith(f'<a href="{URL}">')


def test_link_span_links_only_first_occurrence() -> None:
    html = "Widgets. Widgets again."
    out = link_span(html, "Widgets", URL)
    assert out.count("<a ") == 1
    assert out == f'<a href="{URL}">Widgets</a>. Widgets again.'


def test_link_span_skips_existing_anchor_and_script() -> None:
    html = (
        '<a href="https://other">Widgets</a>'
        '<script>var t = "Widgets";</script>'
        "<style>/* Widgets */</style>"
        " Widgets"
    )
    out = link_span(html, "Widgets", URL)
    assert out == (
        '<a href="https://other">Widgets</a>'
        '<script>var t = "Widgets";</script>'
        "<style>/* Widgets */</style>"
        f' <a href="{URL}">Widgets</a>'
    )


def test_link_span_no_match_returns_input() -> None:
    html = "<i>Something else</i>"
    assert link_span(html, "Widgets", URL) == html


def test_link_span_rejects_unsafe_url() -> None:
    html = "<i>Widgets</i>"
    assert link_span(html, "Widgets", "javascript:alert(1)") == html


def test_link_span_empty_title_returns_input() -> None:
    html = "<i>Widgets</i>"
    assert link_span(html, "", URL) == html


def test_link_span_escapes_url_in_href() -> None:
    out = link_span("Widgets", "Widgets", "https://example.com/?a=1&b=2")
    assert out == '<a href="https://example.com/?a=1&amp;b=2">Widgets</a>'
