"""Shared typed models for bibliography enrichment and rendering."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_TITLE_LINK_FIELDS: tuple[str, ...] = ("url", "doi", "arxiv")
LIST_KINDS: frozenset[str] = frozenset({"ol", "ul", "div"})


@dataclass(frozen=True, slots=True)
class RawRecord:
    """One BibTeX entry exactly as the raw parse produced it."""

    label: str
    entry_type: str
    fields: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class BibEntry:
    """A bibliography entry enriched with fields the CSL conversion drops.

    ``raw`` and ``custom`` are read-only mappings; ``csl`` is the CSL-JSON
    record handed back to the formatting engine on render.
    """

    csl: Mapping[str, Any]
    key: str
    year: int | None
    custom: Mapping[str, str]
    raw: Mapping[str, Any]

    @property
    def title(self) -> str:
        value = self.csl.get("title")
        return value if isinstance(value, str) else ""


@dataclass(frozen=True, slots=True)
class BadgeConfig:
    """Declarative badge link rendered after an entry.

    ``url`` is a template where every ``$1`` is replaced by the field value.
    When ``match`` is set the value must match it (``re.search``) and the
    first capture group, or the whole match, is substituted instead.
    """

    field: str
    label: str
    url: str
    match: re.Pattern[str] | str | None = None
    class_name: str | None = None

    def pattern(self) -> re.Pattern[str] | None:
        if self.match is None or isinstance(self.match, re.Pattern):
            return self.match
        return re.compile(self.match)


@dataclass(frozen=True, slots=True)
class FormatOptions:
    """Options for Bibliography.format_entry / format_html."""

    title_link: tuple[str, ...] = DEFAULT_TITLE_LINK_FIELDS
    badges: tuple[BadgeConfig, ...] = ()
    list: str = "ol"
    list_attributes: Mapping[str, str | bool] | None = None
    linkify_urls: bool = True

    def __post_init__(self) -> None:
        if self.list not in LIST_KINDS:
            raise ValueError(f"Unsupported list element: {self.list!r} (expected ol, ul or div)")

    def wrapper_attributes(self) -> Mapping[str, str | bool]:
        if self.list_attributes is not None:
            return self.list_attributes
        return {"reversed": True} if self.list == "ol" else {}

    @property
    def item_tag(self) -> str:
        return "div" if self.list == "div" else "li"
