"""Pick the URL an entry's title should link to."""

from __future__ import annotations

import re
from collections.abc import Iterable

from models import DEFAULT_TITLE_LINK_FIELDS, BibEntry
from url_safety import sanitize_url

DOI_RESOLVER = "https://doi.org/"
ARXIV_ABS = "https://arxiv.org/abs/"

_DOI_PREFIX_RE = re.compile(r"^doi:\s*", re.IGNORECASE)
_ARXIV_VERSION_RE = re.compile(r"v\d+$")


def resolve_title_link(entry: BibEntry, fields: Iterable[str] | None = None) -> str | None:
    """Return the first usable title URL from the candidate fields, in order.

    A value that already carries an http(s) or mailto scheme is used as-is, a
    ``doi`` is expanded against doi.org and an ``arxiv`` id (version suffix
    stripped) against arxiv.org. Other values are passed over.
    """
    for name in fields if fields is not None else DEFAULT_TITLE_LINK_FIELDS:
        value = _lookup(entry, name)
        if value is None:
            continue

        url = sanitize_url(value)
        if url is None and name == "doi":
            url = sanitize_url(DOI_RESOLVER + _DOI_PREFIX_RE.sub("", value))
        elif url is None and name == "arxiv":
            url = sanitize_url(ARXIV_ABS + _ARXIV_VERSION_RE.sub("", value))

        if url:
            return url
    return None


def _lookup(entry: BibEntry, name: str) -> str | None:
    # The CSL record spells identifiers in upper case (DOI, URL), hence the
    # upper-cased lookup before the literal one.
    value = entry.raw.get(name)
    if value is None:
        value = entry.csl.get(name.upper())
    if value is None:
        value = entry.csl.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None
