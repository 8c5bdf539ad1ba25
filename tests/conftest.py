from __future__ import annotations

import html
from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from bibliography import Bibliography
from csl_engine import CiteprocEngine

SAMPLE_BIB = """
@Article{doe-smith:2023:widgets,
  author    = {Doe, Jane and Smith, Alex},
  title     = {On the Enumeration of Widgets},
  journal   = {J. Widget Sci.},
  volume    = {42},
  pages     = {1--15},
  year      = {2023},
  doi       = {10.1234/jws.2023.001},
  arxiv     = {2301.00001},
  url       = {https://example.com/widgets},
  mrnumber  = {4500001},
  publication-status = {published},
  project   = {WidgetFund-1234},
}

@Article{doe:2024:gadgets,
  author    = {Doe, Jane},
  title     = {Gadgets and their Applications},
  journal   = {Gadget Rev.},
  volume    = {7},
  number    = {3},
  pages     = {100--120},
  year      = {2024},
  doi       = {10.5678/gr.2024.003},
  publication-status = {published},
}

@Misc{doe-jones:2025:preprint,
  author    = {Doe, Jane and Jones, Pat},
  title     = {A Preprint on Sprockets},
  howpublished = {arXiv:2501.99999v2 [math.CO]},
  year      = {2025},
  arxiv     = {2501.99999v2},
  url       = {https://arxiv.org/abs/2501.99999v2},
  publication-status = {preprint},
}

@Manual{doe:2022:software,
  author    = {Doe, Jane},
  title     = {widgetlib -- a Python library for widget analysis},
  url       = {https://github.com/jdoe/widgetlib},
  year      = {2022},
  note      = {Available at \\url{https://github.com/jdoe/widgetlib}},
  publication-status = {software},
}

@InProceedings{smith-doe:2021:conf,
  author    = {Smith, Alex and Doe, Jane},
  title     = {Widget Bounds in Higher Dimensions},
  booktitle = {Proceedings of the International Widget Conference (IWC 2021)},
  pages     = {55--62},
  year      = {2021},
  doi       = {10.9999/iwc.2021.007},
  publication-status = {published},
  zbl       = {7654.12345},
}
"""

CUSTOM_FIELDS = ["publication-status", "arxiv", "mrnumber", "project", "zbl"]


class FakeRenderEngine(CiteprocEngine):
    """Real BibTeX parsing, predictable rendering.

    Entries render as ``[n] Authors (year). <i>Title</i>. Container. Note``
    where ``n`` is the position in the batch, mimicking numeric styles.
    """

    def __init__(self) -> None:
        super().__init__()
        self.known_styles: dict[str, str] = {"apa": "", "vancouver": ""}
        self.batch_calls: list[list[str]] = []

    def style_exists(self, name: str) -> bool:
        return name in self.known_styles

    def register_style(self, name: str, xml_text: str) -> None:
        self.known_styles[name] = xml_text

    def render_one(self, record: Mapping[str, Any], style: str) -> str:
        return f'<div class="csl-bib-body">{self._render(record, 1)}</div>'

    def render_batch(
        self, records: Sequence[Mapping[str, Any]], style: str
    ) -> list[tuple[str, str]]:
        self.batch_calls.append([str(r["id"]) for r in records])
        return [(str(r["id"]), self._render(r, n)) for n, r in enumerate(records, 1)]

    @staticmethod
    def _render(record: Mapping[str, Any], number: int) -> str:
        authors = ", ".join(n.get("family", "") for n in record.get("author", []))
        year = record.get("issued", {}).get("date-parts", [[""]])[0][0]
        parts = [
            f"[{number}] {html.escape(authors)} ({year}).",
            f"<i>{html.escape(record.get('title', ''))}</i>.",
        ]
        if record.get("container-title"):
            container = html.escape(record["container-title"])
            parts.append(container if container.endswith(".") else container + ".")
        if record.get("note"):
            parts.append(html.escape(record["note"]))
        return f'<div class="csl-entry">{" ".join(parts)}</div>'


@pytest.fixture
def fake_engine() -> FakeRenderEngine:
    return FakeRenderEngine()


@pytest.fixture
def make_bib(fake_engine: FakeRenderEngine):
    """Factory building a Bibliography over SAMPLE_BIB with the fake engine."""

    def _make(data: str = SAMPLE_BIB, **overrides: Any) -> Bibliography:
        kwargs: dict[str, Any] = {"custom_fields": CUSTOM_FIELDS, "engine": fake_engine}
        kwargs.update(overrides)
        return Bibliography(data, **kwargs)

    return _make


@pytest.fixture
def bib(make_bib) -> Bibliography:
    return make_bib()


@pytest.fixture
def sample_bib() -> str:
    return SAMPLE_BIB
