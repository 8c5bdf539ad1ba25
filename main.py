"""CLI entrypoint: render a BibTeX file as linked HTML."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from badges import DEFAULT_BADGES
from bibliography import Bibliography
from models import DEFAULT_TITLE_LINK_FIELDS, FormatOptions


def _key_value(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected FIELD=VALUE, got {raw!r}")
    return name.strip(), value


def _attribute(raw: str) -> tuple[str, str | bool]:
    name, sep, value = raw.partition("=")
    if not name.strip():
        raise argparse.ArgumentTypeError(f"expected NAME or NAME=VALUE, got {raw!r}")
    return name.strip(), value if sep else True


def _field_list(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Render a BibTeX bibliography as linked HTML")
    parser.add_argument("source", help="Path to a .bib file")
    parser.add_argument(
        "--style",
        default=None,
        help="CSL style name, .csl path or URL (default: BIB_CSL_STYLE or 'apa')",
    )
    parser.add_argument(
        "--custom-field",
        action="append",
        default=None,
        dest="custom_fields",
        help="BibTeX field to preserve (repeatable; default: BIB_CUSTOM_FIELDS)",
    )
    parser.add_argument(
        "--filter",
        action="append",
        type=_key_value,
        default=[],
        dest="filters",
        metavar="FIELD=VALUE",
        help="Keep entries whose custom field equals VALUE (repeatable, AND-ed)",
    )
    parser.add_argument("--sort-by", default="year", help="'year' or a custom field name")
    parser.add_argument("--order", choices=["asc", "desc"], default="desc")
    parser.add_argument("--list", choices=["ol", "ul", "div"], default="ol", dest="list_kind")
    parser.add_argument(
        "--list-attr",
        action="append",
        type=_attribute,
        default=None,
        dest="list_attrs",
        metavar="NAME[=VALUE]",
        help="Attribute for the wrapper element (repeatable)",
    )
    parser.add_argument(
        "--title-link",
        type=_field_list,
        default=DEFAULT_TITLE_LINK_FIELDS,
        help="Comma-separated fields tried in order for the title link",
    )
    parser.add_argument(
        "--default-badges",
        action="store_true",
        help="Append doi / arXiv / MR / zbMATH badges",
    )
    parser.add_argument("--no-linkify", action="store_true", help="Leave bare URLs as text")
    parser.add_argument(
        "--output",
        default=os.getenv("BIB_OUTPUT_PATH"),
        help="Write HTML here instead of stdout (default: BIB_OUTPUT_PATH)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> str:
    """Build the bibliography described by ``args`` and return its HTML."""
    custom_fields = args.custom_fields
    if custom_fields is None:
        custom_fields = list(_field_list(os.getenv("BIB_CUSTOM_FIELDS", "")))

    bib = Bibliography(args.source, csl_style=args.style, custom_fields=custom_fields)

    entries = bib.filter(dict(args.filters))
    logging.info(
        "Filter: total=%s kept=%s criteria=%s", len(bib.entries), len(entries), args.filters
    )
    entries = bib.sort(entries, by=args.sort_by, order=args.order)

    options = FormatOptions(
        title_link=tuple(args.title_link),
        badges=DEFAULT_BADGES if args.default_badges else (),
        list=args.list_kind,
        list_attributes=dict(args.list_attrs) if args.list_attrs is not None else None,
        linkify_urls=not args.no_linkify,
    )
    return bib.format_html(entries, options)


def main(argv: list[str] | None = None) -> None:
    """Initialize config and render the bibliography."""
    load_dotenv()
    args = parse_args(argv)
    level = logging.DEBUG if args.verbose else os.getenv("BIB_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")

    html = run(args)

    if args.output:
        Path(args.output).write_text(html + "\n", encoding="utf-8")
        logging.info("Wrote bibliography HTML to %s", args.output)
    else:
        sys.stdout.write(html + "\n")


if __name__ == "__main__":
    main()
