"""Turn bare http(s) URLs in HTML text into anchors."""

from __future__ import annotations

import html
import re

from html_tokens import iter_tokens, split_tags
from url_safety import escape_html

# Text here is already HTML-escaped: "&amp;" is a literal ampersand inside the
# URL, while any other entity (&lt;, &quot;, ...) ends it.
_BARE_URL_RE = re.compile(r"https?://(?:&amp;|&#0*38;|[^\s<>\"',;&])+", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[.,;:!?)]+$")
_SCHEME_ONLY_RE = re.compile(r"^https?://$", re.IGNORECASE)


def linkify_bare_urls(markup: str) -> str:
    """Wrap bare URLs found in text nodes in <a> elements.

    Anchors, scripts and styles are left alone, trailing sentence punctuation
    stays outside the link, and running it again on its own output changes
    nothing.
    """
    tokens = split_tags(markup)
    changed = False
    for index, token, editable in iter_tokens(markup):
        if not editable or "://" not in token:
            continue
        linked = _BARE_URL_RE.sub(_link_match, token)
        if linked != token:
            tokens[index] = linked
            changed = True
    return "".join(tokens) if changed else markup


def _link_match(match: re.Match[str]) -> str:
    url = match.group(0)
    trimmed = _TRAILING_PUNCT_RE.sub("", url)
    if _SCHEME_ONLY_RE.match(trimmed):
        return url
    trailing = url[len(trimmed):]
    href = escape_html(html.unescape(trimmed))
    return f'<a href="{href}">{trimmed}</a>{trailing}'
