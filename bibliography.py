"""Bibliography facade: parse, reconcile, filter, sort and render entries."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence

from badges import render_badges
from csl_engine import CitationEngine, CiteprocEngine
from linkify import linkify_bare_urls
from models import BibEntry, FormatOptions
from reconcile import build_entries
from span_linker import link_span
from styles import read_source, resolve_style
from title_link import resolve_title_link
from url_safety import escape_html, render_attributes

LOGGER = logging.getLogger(__name__)

SORT_ORDERS: frozenset[str] = frozenset({"asc", "desc"})

_BODY_OPEN_RE = re.compile(r'^\s*<div[^>]*class="csl-bib-body"[^>]*>\s*', re.DOTALL)
_ENTRY_OPEN_RE = re.compile(r'^\s*<div[^>]*class="csl-entry"[^>]*>\s*', re.DOTALL)
_DIV_CLOSE_RE = re.compile(r"\s*</div>\s*$", re.DOTALL)


class Bibliography:
    """A BibTeX bibliography whose entries keep the fields CSL drops.

    Args:
        data: BibTeX text, or a path to a ``.bib`` file.
        csl_style: Built-in style name, path or URL of a ``.csl`` file, or the
            CSL XML itself. Defaults to ``BIB_CSL_STYLE`` (``apa``).
        custom_fields: BibTeX fields to preserve on each entry's ``custom``.
        engine: Parsing/formatting engine; defaults to CiteprocEngine.
    """

    def __init__(
        self,
        data: str,
        csl_style: str | None = None,
        custom_fields: Iterable[str] | None = None,
        engine: CitationEngine | None = None,
    ) -> None:
        self.engine: CitationEngine = engine or CiteprocEngine()
        self.custom_field_names: tuple[str, ...] = tuple(custom_fields or ())
        self.template_name = resolve_style(self.engine, csl_style)

        text = read_source(data)
        raw_records = self.engine.parse_raw(text)
        normalized = self.engine.parse_normalized(text)
        self.entries: tuple[BibEntry, ...] = tuple(
            build_entries(raw_records, normalized, self.custom_field_names)
        )
        LOGGER.info(
            "Loaded %s entries with CSL style %s", len(self.entries), self.template_name
        )

    # ------------------------------------------------------------------
    # Filtering & sorting
    # ------------------------------------------------------------------

    def filter(self, criteria: Mapping[str, str] | None = None) -> list[BibEntry]:
        """Entries whose custom fields equal every given value.

        Example: ``bib.filter({"publication-status": "published"})``.
        """
        criteria = criteria or {}
        return [
            entry
            for entry in self.entries
            if all(entry.custom.get(name) == value for name, value in criteria.items())
        ]

    def sort(
        self,
        entries: Iterable[BibEntry],
        by: str = "year",
        order: str = "desc",
    ) -> list[BibEntry]:
        """Return a sorted copy of ``entries`` (the input is not touched).

        ``by`` is ``"year"`` or a custom field name. Ties keep their input
        order in both directions.
        """
        if order not in SORT_ORDERS:
            raise ValueError(f"Unsupported sort order: {order!r} (expected 'asc' or 'desc')")

        if by == "year":
            sort_key = lambda e: e.year or 0  # noqa: E731
        else:
            sort_key = lambda e: e.custom.get(by, "")  # noqa: E731

        # sorted() is stable for reverse=True too, so ties stay in input order.
        return sorted(entries, key=sort_key, reverse=order == "desc")

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_entry(self, entry: BibEntry, options: FormatOptions | None = None) -> str:
        """One entry as HTML, without a wrapper, with title link and badges."""
        options = options or FormatOptions()
        html = unwrap_entry(self.engine.render_one(entry.csl, self.template_name))
        return self._decorate(entry, html, options)

    def format_html(
        self, entries: Sequence[BibEntry], options: FormatOptions | None = None
    ) -> str:
        """A complete HTML list for ``entries``, in the given order.

        All entries are rendered in a single engine call so that style state
        spanning entries (numeric labels and the like) follows this order.
        """
        if not entries:
            return ""
        options = options or FormatOptions()

        rendered = self.engine.render_batch([e.csl for e in entries], self.template_name)
        by_id = dict(rendered)

        item_tag = options.item_tag
        items: list[str] = []
        for entry, (_, fallback) in zip(entries, rendered):
            base = by_id.get(str(entry.csl.get("id", entry.key)), fallback)
            inner = self._decorate(entry, unwrap_entry(base), options)
            items.append(
                f'<{item_tag} data-csl-entry-id="{escape_html(entry.key)}" class="csl-entry">'
                f"{inner}</{item_tag}>"
            )

        attrs = render_attributes(options.wrapper_attributes())
        html = f'<{options.list}{attrs} class="csl-bib-body">\n' + "\n".join(items) + f"\n</{options.list}>"

        if options.linkify_urls:
            html = linkify_bare_urls(html)
        LOGGER.debug("Formatted %s entries as <%s>", len(items), options.list)
        return html

    def _decorate(self, entry: BibEntry, html: str, options: FormatOptions) -> str:
        title_url = resolve_title_link(entry, options.title_link)
        if title_url:
            html = link_span(html, entry.title, title_url)

        badge_html = render_badges(entry, options.badges)
        if badge_html:
            html = f"{html} {badge_html}"
        return html


def unwrap_entry(html: str) -> str:
    """Strip the csl-bib-body and csl-entry containers the engine adds."""
    for opener in (_BODY_OPEN_RE, _ENTRY_OPEN_RE):
        stripped, count = opener.subn("", html, count=1)
        if count:
            html = _DIV_CLOSE_RE.sub("", stripped, count=1)
    return html.strip()
