"""Render field-derived badge links after a bibliography entry."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from models import BadgeConfig, BibEntry
from url_safety import escape_html, sanitize_url

LOGGER = logging.getLogger(__name__)

PLACEHOLDER = "$1"
BADGE_CONTAINER_CLASS = "bib-links"

# Common identifier badges. The arXiv pattern drops a trailing version suffix,
# the zbMATH one only links well-formed Zbl numbers.
DEFAULT_BADGES: tuple[BadgeConfig, ...] = (
    BadgeConfig(field="doi", label="doi", url="https://doi.org/$1", class_name="bib-doi"),
    BadgeConfig(
        field="arxiv",
        label="arXiv",
        url="https://arxiv.org/abs/$1",
        match=r"^(.+?)(?:v\d+)?$",
        class_name="bib-arxiv",
    ),
    BadgeConfig(
        field="mrnumber",
        label="MR",
        url="https://mathscinet.ams.org/mathscinet-getitem?mr=$1",
        class_name="bib-mr",
    ),
    BadgeConfig(
        field="zbl",
        label="zbMATH",
        url="https://zbmath.org/?q=an:$1",
        match=r"^(\d{4}\.\d{5})$",
        class_name="bib-zbl",
    ),
)


def render_badges(entry: BibEntry, badges: Iterable[BadgeConfig]) -> str:
    """Return a <span class="bib-links"> of badge anchors, or "" when none apply."""
    parts = [link for link in (render_badge(entry, badge) for badge in badges) if link]
    if not parts:
        return ""
    return f'<span class="{BADGE_CONTAINER_CLASS}">{" ".join(parts)}</span>'


def render_badge(entry: BibEntry, badge: BadgeConfig) -> str | None:
    value = _field_value(entry, badge.field)
    if value is None:
        return None

    pattern = badge.pattern()
    if pattern is not None:
        match = pattern.search(value)
        if match is None:
            LOGGER.debug(
                "Badge %s skipped for %s: %r does not match %s",
                badge.label, entry.key, value, pattern.pattern,
            )
            return None
        group = match.group(1) if pattern.groups else None
        insert = group if group is not None else match.group(0)
    else:
        insert = value

    url = sanitize_url(badge.url.replace(PLACEHOLDER, insert))
    if url is None:
        LOGGER.debug("Badge %s skipped for %s: unsafe URL", badge.label, entry.key)
        return None

    cls = f' class="{escape_html(badge.class_name)}"' if badge.class_name else ""
    return f'<a{cls} href="{escape_html(url)}">{escape_html(badge.label)}</a>'


def _field_value(entry: BibEntry, name: str) -> str | None:
    """Raw value first, then the preserved custom value; blanks count as absent."""
    for source in (entry.raw, entry.custom):
        value: Any = source.get(name)
        if value is None:
            continue
        text = str(value)
        if text.strip():
            return text
    return None
