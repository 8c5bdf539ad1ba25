"""CSL style selector resolution and BibTeX source loading."""

from __future__ import annotations

import hashlib
import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Protocol

import requests

DEFAULT_CSL_STYLE = os.getenv("BIB_CSL_STYLE", "apa")
STYLE_FETCH_TIMEOUT_SECONDS = float(os.getenv("BIB_STYLE_FETCH_TIMEOUT", "20"))
CSL_NAMESPACE = "http://purl.org/net/xbiblio/csl"
CUSTOM_STYLE_PREFIX = "custom-"

LOGGER = logging.getLogger(__name__)


class StyleConfigError(ValueError):
    """Raised when a CSL style selector cannot be resolved."""


class StyleRegistry(Protocol):
    def style_exists(self, name: str) -> bool: ...

    def register_style(self, name: str, xml_text: str) -> None: ...


def resolve_style(registry: StyleRegistry, selector: str | None = None) -> str:
    """Return the template name to format with, registering raw styles as needed.

    ``selector`` may be a registered or built-in style name, an http(s) URL,
    a path to a ``.csl`` file or the CSL XML itself. Raw styles are registered
    under a name derived from their content, so equal texts share one name and
    different texts never overwrite each other.
    """
    selector = (selector or DEFAULT_CSL_STYLE).strip()
    if not selector:
        raise StyleConfigError("Empty CSL style selector")

    if not selector.startswith("<") and registry.style_exists(selector):
        return selector

    xml_text = load_style_text(selector)
    validate_style_text(xml_text)

    name = style_name_for(xml_text)
    if registry.style_exists(name):
        LOGGER.debug("CSL style already registered as %s", name)
    else:
        registry.register_style(name, xml_text)
        LOGGER.info("Registered custom CSL style as %s", name)
    return name


def style_name_for(xml_text: str) -> str:
    digest = hashlib.sha256(xml_text.encode("utf-8")).hexdigest()
    return f"{CUSTOM_STYLE_PREFIX}{digest[:16]}"


def load_style_text(selector: str) -> str:
    """Fetch, read or pass through the CSL text a selector refers to."""
    if selector.startswith("<"):
        return selector

    if selector.lower().startswith(("http://", "https://")):
        return _fetch_style(selector)

    path = Path(selector).expanduser()
    if path.is_file():
        LOGGER.info("Reading CSL style from %s", path)
        return path.read_text(encoding="utf-8")

    raise StyleConfigError(
        f"Unrecognized CSL style {selector!r}: not a known style name, file path or CSL XML"
    )


def validate_style_text(xml_text: str) -> None:
    try:
        root = ET.fromstring(xml_text.strip())
    except ET.ParseError as exc:
        raise StyleConfigError(f"CSL style is not well-formed XML: {exc}") from exc
    if root.tag not in (f"{{{CSL_NAMESPACE}}}style", "style"):
        raise StyleConfigError(f"Not a CSL style document (root element {root.tag!r})")


def _fetch_style(url: str) -> str:
    LOGGER.info("Downloading CSL style from %s", url)
    try:
        response = requests.get(url, timeout=STYLE_FETCH_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise StyleConfigError(f"Could not download CSL style from {url}: {exc}") from exc
    return response.text


def read_source(data: str) -> str:
    """Return BibTeX text, reading it from disk when ``data`` is a path.

    Strings containing a newline or starting with ``@`` or ``<`` are taken as
    content; anything else is a file path.
    """
    if "\n" in data or data.lstrip().startswith(("@", "<")):
        return data
    path = Path(data).expanduser()
    LOGGER.info("Reading BibTeX source from %s", path)
    return path.read_text(encoding="utf-8")
