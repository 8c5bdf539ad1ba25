"""Adapter around the external BibTeX parser and CSL processor.

Two libraries do the real work: ``bibtexparser`` produces the raw parse (every
field kept, nothing normalized) and ``citeproc-py`` renders CSL-JSON records
with a CSL style. The small BibTeX -> CSL-JSON mapping in between is a field
table, not a grammar; anything it does not know is simply left out of the
normalized record and stays reachable through the raw parse.
"""

from __future__ import annotations

import html
import logging
import os
import re
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

import bibtexparser
from bibtexparser.bparser import BibTexParser
from citeproc import (
    Citation,
    CitationItem,
    CitationStylesBibliography,
    CitationStylesStyle,
    formatter,
)
from citeproc.source.json import CiteProcJSON
from citeproc_styles import StyleNotFoundError, get_style_filepath

from models import RawRecord

ENTRY_CLASS = "csl-entry"
BODY_CLASS = "csl-bib-body"
STYLE_CACHE_DIR = Path(
    os.getenv("BIBHTML_STYLE_CACHE_DIR", os.path.join(tempfile.gettempdir(), "bibhtml-styles"))
)

LOGGER = logging.getLogger(__name__)

# Built-in names kept for compatibility with other CSL front ends.
_STYLE_ALIASES: dict[str, str] = {
    "harvard1": "harvard-cite-them-right",
}

# Styles registered from raw CSL text, shared by every engine in the process.
# Names are content hashes, so entries never need replacing.
_REGISTERED_STYLES: dict[str, Path] = {}

_TYPE_MAP: dict[str, str] = {
    "article": "article-journal",
    "book": "book",
    "booklet": "pamphlet",
    "inbook": "chapter",
    "incollection": "chapter",
    "inproceedings": "paper-conference",
    "conference": "paper-conference",
    "proceedings": "book",
    "manual": "report",
    "mastersthesis": "thesis",
    "phdthesis": "thesis",
    "techreport": "report",
    "report": "report",
    "unpublished": "manuscript",
    "online": "webpage",
    "misc": "article",
}

_FIELD_MAP: dict[str, str] = {
    "title": "title",
    "journal": "container-title",
    "journaltitle": "container-title",
    "booktitle": "container-title",
    "series": "collection-title",
    "volume": "volume",
    "number": "issue",
    "edition": "edition",
    "publisher": "publisher",
    "school": "publisher",
    "institution": "publisher",
    "organization": "publisher",
    "address": "publisher-place",
    "location": "publisher-place",
    "doi": "DOI",
    "url": "URL",
    "isbn": "ISBN",
    "issn": "ISSN",
    "note": "note",
    "howpublished": "note",
    "abstract": "abstract",
}

_NAME_FIELDS: tuple[str, ...] = ("author", "editor")

_MONTHS: dict[str, int] = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

# Keys that are ours, not CSL variables; they never reach citeproc.
_RENDER_EXCLUDED_KEYS: frozenset[str] = frozenset({"citation-key"})

_LATEX_COMMAND_RE = re.compile(r"\\[A-Za-z]+\s*\{([^{}]*)\}")
_LATEX_GROUP_COMMAND_RE = re.compile(r"\{\\[A-Za-z]+\s+([^{}]*)\}")
_LATEX_ESCAPE_RE = re.compile(r"\\([&%$#_{}])")
_WHITESPACE_RE = re.compile(r"\s+")


class CitationEngine(Protocol):
    """What Bibliography needs from a parsing/formatting engine."""

    def parse_raw(self, text: str) -> list[RawRecord]: ...

    def parse_normalized(self, text: str) -> list[dict[str, Any]]: ...

    def render_one(self, record: Mapping[str, Any], style: str) -> str: ...

    def render_batch(
        self, records: Sequence[Mapping[str, Any]], style: str
    ) -> list[tuple[str, str]]: ...

    def style_exists(self, name: str) -> bool: ...

    def register_style(self, name: str, xml_text: str) -> None: ...


class CiteprocEngine:
    """bibtexparser + citeproc-py implementation of CitationEngine."""

    def __init__(self, locale: str | None = None) -> None:
        self.locale = locale
        self._styles: dict[str, CitationStylesStyle] = {}

    # -- parsing ---------------------------------------------------------

    def parse_raw(self, text: str) -> list[RawRecord]:
        database = bibtexparser.loads(text, parser=_new_parser())
        records = [
            RawRecord(
                label=entry["ID"],
                entry_type=entry.get("ENTRYTYPE", "misc"),
                fields={k: v for k, v in entry.items() if k not in ("ID", "ENTRYTYPE")},
            )
            for entry in database.entries
        ]
        LOGGER.debug("Raw parse produced %s records", len(records))
        return records

    def parse_normalized(self, text: str) -> list[dict[str, Any]]:
        return [bibtex_to_csl(record) for record in self.parse_raw(text)]

    # -- rendering -------------------------------------------------------

    def render_one(self, record: Mapping[str, Any], style: str) -> str:
        [(_, entry_html)] = self.render_batch([record], style)
        return f'<div class="{BODY_CLASS}">{entry_html}</div>'

    def render_batch(
        self, records: Sequence[Mapping[str, Any]], style: str
    ) -> list[tuple[str, str]]:
        """Render all records with one citeproc bibliography, in the given order."""
        if not records:
            return []

        # citeproc lower-cases ids, so every record gets a positional key of its
        # own; "Smith2020" and "smith2020", or one record passed twice, stay apart.
        item_keys = [f"item-{index}" for index in range(len(records))]
        source = CiteProcJSON(
            [_renderable(record, key) for record, key in zip(records, item_keys)]
        )
        bibliography = CitationStylesBibliography(self._style(style), source, formatter.html)
        for key in item_keys:
            bibliography.register(Citation([CitationItem(key)]))

        rendered = bibliography.bibliography()
        if len(rendered) != len(records):
            raise RuntimeError(
                f"CSL processor returned {len(rendered)} entries for {len(records)} records"
            )
        by_key = dict(zip((str(key) for key in bibliography.keys), rendered))
        return [
            (str(record["id"]), f'<div class="{ENTRY_CLASS}">{by_key.get(key, item)}</div>')
            for record, key, item in zip(records, item_keys, rendered)
        ]

    # -- styles ----------------------------------------------------------

    def style_exists(self, name: str) -> bool:
        return _style_path(name) is not None

    def register_style(self, name: str, xml_text: str) -> None:
        STYLE_CACHE_DIR.mkdir(parents=True, exist_ok=True)
        path = STYLE_CACHE_DIR / f"{name}.csl"
        path.write_text(xml_text, encoding="utf-8")
        _REGISTERED_STYLES[name] = path
        self._styles.pop(name, None)
        LOGGER.debug("Wrote CSL style %s to %s", name, path)

    def _style(self, name: str) -> CitationStylesStyle:
        style = self._styles.get(name)
        if style is None:
            path = _style_path(name)
            if path is None:
                raise KeyError(f"CSL style {name!r} is not available")
            style = CitationStylesStyle(str(path), locale=self.locale, validate=False)
            self._styles[name] = style
        return style


def _style_path(name: str) -> Path | None:
    if name in _REGISTERED_STYLES:
        return _REGISTERED_STYLES[name]
    try:
        return Path(get_style_filepath(_STYLE_ALIASES.get(name, name)))
    except StyleNotFoundError:
        return None


def _new_parser() -> BibTexParser:
    # bibtexparser parsers keep state between calls, so each parse gets its own.
    return BibTexParser(
        common_strings=True,
        ignore_nonstandard_types=False,
        homogenize_fields=False,
    )


def _renderable(record: Mapping[str, Any], key: str) -> dict[str, Any]:
    """Copy ``record`` for citeproc under ``key``, with all text HTML-escaped.

    citeproc-py's html formatter writes variable text out verbatim.
    """
    renderable = {
        name: _escape_text(value)
        for name, value in record.items()
        if name not in _RENDER_EXCLUDED_KEYS
    }
    renderable["id"] = key
    return renderable


def _escape_text(value: Any) -> Any:
    if isinstance(value, str):
        return html.escape(value, quote=False)
    if isinstance(value, Mapping):
        return {name: _escape_text(item) for name, item in value.items()}
    if isinstance(value, list):
        return [_escape_text(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# BibTeX -> CSL-JSON
# ---------------------------------------------------------------------------


def bibtex_to_csl(record: RawRecord) -> dict[str, Any]:
    """Map one raw record onto the CSL-JSON variables citeproc understands."""
    fields = record.fields
    csl: dict[str, Any] = {
        "id": record.label,
        "citation-key": record.label,
        "type": _TYPE_MAP.get(record.entry_type.lower(), "article"),
    }

    for bib_name, csl_name in _FIELD_MAP.items():
        value = fields.get(bib_name)
        if value and csl_name not in csl:
            csl[csl_name] = value.strip() if csl_name in ("DOI", "URL") else clean_latex(value)

    pages = fields.get("pages")
    if pages:
        csl["page"] = clean_latex(re.sub(r"-{2,}", "-", pages))

    for name_field in _NAME_FIELDS:
        if fields.get(name_field):
            csl[name_field] = parse_names(fields[name_field])

    issued = _date_parts(fields.get("year"), fields.get("month"))
    if issued:
        csl["issued"] = {"date-parts": [issued]}

    return csl


def clean_latex(value: str) -> str:
    text = _LATEX_GROUP_COMMAND_RE.sub(r"\1", value)
    text = _LATEX_COMMAND_RE.sub(r"\1", text)
    text = _LATEX_ESCAPE_RE.sub(r"\1", text)
    text = text.replace("---", "\u2014").replace("--", "\u2013").replace("~", " ")
    text = text.replace("{", "").replace("}", "")
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_names(value: str) -> list[dict[str, str]]:
    """Split a BibTeX name list ("Doe, Jane and Alex Smith") into CSL names."""
    names: list[dict[str, str]] = []
    for part in _split_top_level(value, " and "):
        part = part.strip()
        if not part:
            continue
        if part.startswith("{") and part.endswith("}"):
            names.append({"family": clean_latex(part)})
        elif "," in part:
            family, _, given = part.partition(",")
            name = {"family": clean_latex(family)}
            if given.strip():
                name["given"] = clean_latex(given)
            names.append(name)
        else:
            words = clean_latex(part).split(" ")
            if len(words) == 1:
                names.append({"family": words[0]})
            else:
                names.append({"family": words[-1], "given": " ".join(words[:-1])})
    return names


def _split_top_level(value: str, separator: str) -> list[str]:
    """Split on ``separator`` outside braces, ignoring case and extra spaces."""
    text = _WHITESPACE_RE.sub(" ", value)
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    lowered = text.lower()
    while i < len(text):
        char = text[i]
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(depth - 1, 0)
        elif depth == 0 and lowered.startswith(separator, i):
            parts.append(text[start:i])
            i += len(separator)
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return parts


def _date_parts(year: str | None, month: str | None) -> list[int]:
    if not year:
        return []
    digits = re.search(r"-?\d+", year)
    if not digits:
        return []
    parts = [int(digits.group(0))]
    if month:
        key = month.strip().lower()[:3]
        if key in _MONTHS:
            parts.append(_MONTHS[key])
        elif key.isdigit() and 1 <= int(key) <= 12:
            parts.append(int(key))
    return parts
