#!/usr/bin/env python3
"""Report how listings use their attributes (counts, fill rate, types, samples)."""
import argparse
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from listingwatch.utils.env import load_env_if_present

load_env_if_present()

from listingwatch.connectors.catalog import build_catalog
from listingwatch.core.logging import setup_logging
from listingwatch.db.session import SessionLocal
from listingwatch.services.field_analysis import FieldAnalyzer, export_csv, export_json


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Analyze attribute usage across catalog listings.")
    p.add_argument("--category", action="append", default=None, help="Category to include (repeatable; default all)")
    p.add_argument("--status", default=None, help="Listing status filter (default: any)")
    p.add_argument("--format", choices=("json", "csv"), default="json")
    p.add_argument("--output", default=None, help="Write to this file instead of stdout")
    return p.parse_args()


def main() -> int:
    args = parse_args()
    setup_logging()

    db = SessionLocal()
    try:
        results = FieldAnalyzer(build_catalog(db)).analyze(categories=args.category, status=args.status)
    finally:
        db.close()

    text = export_csv(results) if args.format == "csv" else export_json(results)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Wrote {len(results['field_usage'])} fields to {args.output}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
