"""Wrap the rendered occurrence of a known plain-text string in a link."""

from __future__ import annotations

import logging
import re

from html_tokens import is_tag, iter_tokens, split_tags, tag_name
from url_safety import escape_html, sanitize_url

LOGGER = logging.getLogger(__name__)

# The engine escapes these, so only entity spellings can appear in its output.
_ENTITY_ONLY: dict[str, str] = {
    "&": r"(?:&amp;|&#0*38;|&#[xX]0*26;)",
    "<": r"(?:&lt;|&#0*60;|&#[xX]0*3[cC];)",
    ">": r"(?:&gt;|&#0*62;|&#[xX]0*3[eE];)",
}
# Quotes may be left raw in text content or escaped.
_RAW_OR_ENTITY: dict[str, str] = {
    '"': r'(?:"|&quot;|&#0*34;|&#[xX]0*22;)',
    "'": r"(?:'|&apos;|&#0*39;|&#[xX]0*27;)",
}

# Inline wrappers the anchor may be lifted around when they hold the whole match.
_LIFTABLE_TAGS: frozenset[str] = frozenset({"i", "em", "b", "strong", "span", "cite"})


def build_text_pattern(plain_text: str) -> re.Pattern[str] | None:
    """Compile a pattern matching ``plain_text`` as it appears in escaped HTML.

    Returns None when the text is empty or blank.
    """
    text = plain_text.strip() if plain_text else ""
    if not text:
        return None

    parts: list[str] = []
    in_space = False
    for char in text:
        if char.isspace():
            if not in_space:
                parts.append(r"\s+")
            in_space = True
            continue
        in_space = False
        if char in _ENTITY_ONLY:
            parts.append(_ENTITY_ONLY[char])
        elif char in _RAW_OR_ENTITY:
            parts.append(_RAW_OR_ENTITY[char])
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE)


def link_span(html: str, plain_text: str, target_url: str | None) -> str:
    """Link the first unlinked rendered occurrence of ``plain_text`` in ``html``.

    Text inside existing anchors, scripts and styles is never touched, and at
    most one link is inserted. The input comes back unchanged when the URL is
    unsafe, the text is empty or nothing matches.
    """
    url = sanitize_url(target_url)
    if url is None:
        LOGGER.debug("link_span: rejected target URL %r", target_url)
        return html

    pattern = build_text_pattern(plain_text)
    if pattern is None:
        LOGGER.debug("link_span: nothing to match for %r", plain_text)
        return html

    tokens = split_tags(html)
    open_tag = f'<a href="{escape_html(url)}">'

    for index, token, editable in iter_tokens(html):
        if not editable:
            continue
        match = pattern.search(token)
        if match is None:
            continue

        if match.start() == 0 and match.end() == len(token) and _wrapped_inline(tokens, index):
            tokens[index - 1] = open_tag + tokens[index - 1]
            tokens[index + 1] = tokens[index + 1] + "</a>"
        else:
            tokens[index] = (
                token[: match.start()] + open_tag + match.group(0) + "</a>" + token[match.end():]
            )
        return "".join(tokens)

    LOGGER.debug("link_span: no occurrence of %r found", plain_text)
    return html


def _wrapped_inline(tokens: list[str], index: int) -> bool:
    """True when tokens[index] is the sole content of an inline element."""
    if index < 1 or index + 1 >= len(tokens):
        return False
    before, after = tokens[index - 1], tokens[index + 1]
    if not (is_tag(before) and is_tag(after)):
        return False
    opened, closed = tag_name(before), tag_name(after)
    if opened is None or closed is None:
        return False
    return (
        opened[0] in _LIFTABLE_TAGS
        and not opened[1]
        and closed == (opened[0], True)
    )
