"""CLI helper to inspect what the listing provider returns for a day."""

from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Sequence

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from lead_bridge.config import load_configuration  # noqa: E402  (import after path fix)
from lead_bridge.errors import MalformedLeadError  # noqa: E402
from lead_bridge.factory import build_source, build_token_provider  # noqa: E402
from lead_bridge.models import SOURCE_TYPES, RawLead  # noqa: E402
from lead_bridge.normalize import normalize  # noqa: E402

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch raw provider leads for debugging.")
    parser.add_argument("source", choices=SOURCE_TYPES, help="Which lead type to fetch")
    parser.add_argument("--config", required=True, help="Pipeline configuration file")
    parser.add_argument("--date", default=dt.date.today().isoformat(), help="Creation date, YYYY-MM-DD")
    parser.add_argument(
        "--output-json",
        type=Path,
        help="Optional path to save the raw records as JSON",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
        help="Console log level",
    )
    return parser.parse_args(argv)


def fetch(args: argparse.Namespace) -> List[RawLead]:
    logging.basicConfig(level=getattr(logging, args.log_level))
    config = load_configuration(args.config)
    token = build_token_provider(config).get_token()
    return build_source(config).fetch(args.source, args.date, token)


def pretty_print(records: List[RawLead]) -> None:
    if not records:
        print("No leads returned.")
        return
    print(f"{len(records)} leads:")
    for record in records:
        try:
            lead = normalize(record)
        except MalformedLeadError as exc:
            print(f"  - <malformed> {exc}")
            continue
        reference = lead.property_reference or "no reference"
        print(f"  - {lead.id} [{reference}] {lead.client_name} {lead.client_phone or lead.client_email}")
        if lead.call and lead.call.has_recording:
            print(f"      recording: {lead.call.recording_url}")


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv or sys.argv[1:])
    try:
        records = fetch(args)
    except Exception as exc:  # pragma: no cover - CLI convenience
        LOGGER.exception("Fetch failed: %s", exc)
        sys.exit(1)

    pretty_print(records)
    if args.output_json:
        normalised = []
        for record in records:
            try:
                normalised.append(asdict(normalize(record)))
            except MalformedLeadError:
                continue
        payload = {"raw": records, "normalized": normalised}
        args.output_json.write_text(json.dumps(payload, indent=2, default=str))
        LOGGER.info("Wrote %s records to %s", len(records), args.output_json)


if __name__ == "__main__":
    main()
