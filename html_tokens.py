"""Tag-boundary tokenizer for self-generated HTML.

The HTML handled here is produced by the citation engine and by this package,
so it is well formed and shallow. Rather than building a DOM, the text is
split on ``<...>`` boundaries and a handful of flags track whether the scan is
currently inside an anchor, a script or a style block. Only text tokens seen
while no flag is set may be rewritten.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# A tag opens only on "<" followed by a name, "/", "!" or "?"; a lone "<" is text.
_TAG_SPLIT_RE = re.compile(r"(<[A-Za-z/!?][^>]*>)")
_TAG_RE = re.compile(r"<[A-Za-z/!?][^>]*>")
_TAG_NAME_RE = re.compile(r"^<\s*(/?)\s*([A-Za-z][A-Za-z0-9:-]*)")

# Elements whose content must never be rewritten.
_TRACKED_TAGS: dict[str, str] = {
    "a": "in_anchor",
    "script": "in_script",
    "style": "in_style",
}


def split_tags(html: str) -> list[str]:
    """Split HTML into alternating text and tag tokens.

    ``"".join(split_tags(s)) == s`` always holds; text tokens may be empty.
    """
    return _TAG_SPLIT_RE.split(html)


def is_tag(token: str) -> bool:
    return _TAG_RE.fullmatch(token) is not None


def tag_name(token: str) -> tuple[str, bool] | None:
    """Return (lower-cased name, is_closing) for a tag token, None otherwise."""
    match = _TAG_NAME_RE.match(token)
    if not match:
        return None
    return match.group(2).lower(), match.group(1) == "/"


@dataclass(slots=True)
class TagState:
    in_anchor: bool = False
    in_script: bool = False
    in_style: bool = False

    @property
    def protected(self) -> bool:
        return self.in_anchor or self.in_script or self.in_style

    def update(self, token: str) -> None:
        """Advance the state past one tag token."""
        parsed = tag_name(token)
        if parsed is None:
            return
        name, closing = parsed
        attr = _TRACKED_TAGS.get(name)
        if attr is None:
            return
        if closing:
            setattr(self, attr, False)
        elif not token.rstrip(">").rstrip().endswith("/"):
            setattr(self, attr, True)


def iter_tokens(html: str):
    """Yield (index, token, editable) for every token of ``html``.

    ``editable`` is True for text tokens outside anchors, scripts and styles.
    """
    state = TagState()
    for index, token in enumerate(split_tags(html)):
        if is_tag(token):
            state.update(token)
            yield index, token, False
        else:
            yield index, token, bool(token) and not state.protected
