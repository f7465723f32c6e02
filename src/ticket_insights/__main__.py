"""Entry point for ``python -m ticket_insights``."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

logger = logging.getLogger("ticket_insights")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ticket-insights",
        description="Compute team insights from a ticket-tracker CSV or Excel export.",
    )
    parser.add_argument("file", type=Path, help="CSV (.csv) or Excel (.xlsx) export to analyse.")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Write the insights JSON to this path instead of stdout.",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=None,
        help="JSON indentation (defaults to the configured output_indent).",
    )
    parser.add_argument(
        "--max-size-mb",
        type=int,
        default=None,
        help="Override the configured maximum source size in megabytes.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output to stderr.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Analyse one export and print (or save) the insights bundle."""
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    from ticket_insights.core.errors import TicketInsightsError
    from ticket_insights.core.export import bundle_to_json
    from ticket_insights.core.pipeline import process_file
    from ticket_insights.services.config_manager import ConfigManager

    config = ConfigManager()
    settings = config.pipeline_settings()
    if args.max_size_mb is not None:
        settings = replace(settings, max_file_size=args.max_size_mb * 1024 * 1024)
    indent = args.indent if args.indent is not None else config.get("output_indent", 2)

    try:
        bundle = process_file(args.file, settings=settings)
    except TicketInsightsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: cannot read {args.file}: {exc.strerror or exc}", file=sys.stderr)
        return 1

    logger.info(
        "%s: %d ticket(s), %d achievement(s), %d improvement area(s)",
        args.file.name,
        bundle.metadata.total_tickets,
        len(bundle.achievements),
        len(bundle.improvement_areas),
    )
    text = bundle_to_json(bundle, indent=indent)
    if args.output is None:
        print(text)
    else:
        args.output.write_text(text + "\n", encoding="utf-8")
        logger.info("Insights written to %s", args.output)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
