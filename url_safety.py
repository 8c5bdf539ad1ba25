"""URL allow-listing and HTML escaping for generated links."""

from __future__ import annotations

import html
import re
from collections.abc import Mapping

ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https", "mailto"})

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")
# Browsers drop these anywhere inside a URL, so "java\tscript:" is "javascript:".
_IGNORED_URL_CHARS_RE = re.compile(r"[\t\r\n]")


def sanitize_url(candidate: str | None) -> str | None:
    """Return a cleaned URL when its scheme is http, https or mailto, else None."""
    if candidate is None:
        return None
    value = _IGNORED_URL_CHARS_RE.sub("", str(candidate)).strip()
    if not value:
        return None

    match = _SCHEME_RE.match(value)
    if not match or match.group(1).lower() not in ALLOWED_SCHEMES:
        return None
    return value


def escape_html(text: str) -> str:
    """Escape &, <, >, " and '; safe for text content and quoted attributes."""
    return html.escape(text, quote=True)


def render_attributes(attrs: Mapping[str, str | bool | None]) -> str:
    """Render an attribute mapping as ' name="value" flag' (leading space included).

    ``True`` renders a bare attribute name; ``False`` and ``None`` are omitted.
    """
    parts: list[str] = []
    for name, value in attrs.items():
        if value is True:
            parts.append(escape_html(name))
        elif value is False or value is None:
            continue
        else:
            parts.append(f'{escape_html(name)}="{escape_html(str(value))}"')
    return " " + " ".join(parts) if parts else ""
