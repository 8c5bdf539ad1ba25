"""Merge the raw BibTeX parse and the CSL-JSON parse of the same entries."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import Any

from models import BibEntry, RawRecord

LOGGER = logging.getLogger(__name__)


def build_entries(
    raw_records: Iterable[RawRecord],
    normalized_records: Sequence[Mapping[str, Any]],
    custom_fields: Iterable[str] = (),
) -> list[BibEntry]:
    """Return one BibEntry per normalized record, in normalized order.

    Each record's raw fields are found by citation key. A record with no raw
    counterpart still yields an entry, with empty ``raw`` and ``custom``.
    ``custom`` holds only the declared fields that the raw record has.
    """
    raw_by_label: dict[str, Mapping[str, Any]] = {}
    for record in raw_records:
        raw_by_label.setdefault(record.label, record.fields)

    declared = list(custom_fields)
    entries: list[BibEntry] = []
    seen: set[str] = set()
    misses = 0

    for csl in normalized_records:
        key = citation_key(csl)
        if key in seen:
            LOGGER.warning("Duplicate citation key %r: keeping the first entry", key)
            continue
        seen.add(key)

        raw = raw_by_label.get(key)
        if raw is None:
            misses += 1
            LOGGER.debug("No raw record for key %r; raw fields unavailable", key)
            raw = {}

        custom = {name: str(raw[name]) for name in declared if raw.get(name) is not None}
        entries.append(
            BibEntry(
                csl=MappingProxyType(dict(csl)),
                key=key,
                year=extract_year(csl),
                custom=MappingProxyType(custom),
                raw=MappingProxyType(dict(raw)),
            )
        )

    LOGGER.info(
        "Reconciled %s entries (raw misses=%s, custom fields=%s)",
        len(entries),
        misses,
        declared,
    )
    return entries


def citation_key(csl: Mapping[str, Any]) -> str:
    return str(csl.get("citation-key") or csl.get("id") or "")


def extract_year(csl: Mapping[str, Any]) -> int | None:
    """First date-part of the CSL ``issued`` field as an int, if any."""
    issued = csl.get("issued")
    if not isinstance(issued, Mapping):
        return None
    parts = issued.get("date-parts")
    if not parts or not isinstance(parts, Sequence) or isinstance(parts, str):
        return None
    first = parts[0]
    if not first or not isinstance(first, Sequence) or isinstance(first, str):
        return None
    year = first[0]
    if isinstance(year, bool):
        return None
    if isinstance(year, int):
        return year
    if isinstance(year, str) and year.strip().lstrip("-").isdigit():
        return int(year)
    return None
