"""Command line interface for running one ingestion pass."""
from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
from pathlib import Path

from .config import ConfigurationError, load_configuration
from .errors import LeadBridgeError
from .factory import build_orchestrator
from .models import SOURCE_TYPES
from .report import export_outcomes

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _source_list(value: str) -> list[str]:
    types = [item.strip() for item in value.split(",") if item.strip()]
    unknown = [item for item in types if item not in SOURCE_TYPES]
    if unknown or not types:
        raise argparse.ArgumentTypeError(
            f"expected a comma separated list of {', '.join(SOURCE_TYPES)}, got {value!r}"
        )
    return types


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Pull new listing-provider leads and create the matching CRM deals",
    )
    parser.add_argument(
        "--config",
        required=True,
        help="Path to the pipeline configuration file (YAML or JSON)",
    )
    parser.add_argument(
        "--date",
        default=None,
        help="Creation date to ingest, YYYY-MM-DD (defaults to today)",
    )
    parser.add_argument(
        "--sources",
        type=_source_list,
        default=None,
        help="Comma separated source types to ingest (call, email, chat)",
    )
    parser.add_argument(
        "--input",
        default=None,
        help="Replay raw leads from a JSON file instead of calling the provider API",
    )
    parser.add_argument("--ledger", default=None, help="Override the processed-leads ledger path")
    parser.add_argument("--report", default=None, help="Write a per-lead report (CSV or XLSX)")
    parser.add_argument(
        "--raise-on-error",
        action="store_true",
        help="Stop the run at the first failing lead instead of logging and continuing",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    parser.add_argument("--log-file", default=None, help="Append log output to this file")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _parse_date(value: str | None) -> str:
    if value is None:
        return dt.date.today().isoformat()
    try:
        return dt.date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise ConfigurationError(f"Invalid --date {value!r}; expected YYYY-MM-DD") from exc


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        filename=args.log_file,
    )

    try:
        date = _parse_date(args.date)
        config = load_configuration(args.config)
        orchestrator = build_orchestrator(
            config,
            input_path=args.input,
            ledger_path=args.ledger,
            source_types=args.sources,
            raise_on_error=args.raise_on_error,
        )
    except ConfigurationError as exc:
        logging.error("%s", exc)
        return EXIT_USAGE

    try:
        summary = orchestrator.run(date)
    except LeadBridgeError as exc:
        logging.error("Run aborted: %s", exc)
        return EXIT_FAILED

    if args.report:
        report_path = export_outcomes(summary.outcomes, args.report)
        logging.info("Run report written to %s", Path(report_path).resolve())

    if summary.failed_sources:
        logging.warning("Sources that could not be fetched: %s", ", ".join(summary.failed_sources))
    return EXIT_OK if summary.ok else EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
