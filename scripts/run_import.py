#!/usr/bin/env python3
"""
One-off script to import plants into the catalog.

Usage (inside the API container):
    python scripts/run_import.py                           # local CSV (LOCAL_CSV_PATH)
    python scripts/run_import.py --csv data/other.csv --max-rows 100
    python scripts/run_import.py --source perenual --query rosa
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s",
    stream=sys.stdout,
)

from app.tasks.import_plants import IMPORT_SOURCES, import_plants

parser = argparse.ArgumentParser(description="HerboLive plant import")
parser.add_argument("--source", choices=IMPORT_SOURCES, default="csv")
parser.add_argument("--csv", dest="csv_path", help="CSV file (defaults to LOCAL_CSV_PATH)")
parser.add_argument("--max-rows", type=int, help="Stop after this many rows")
parser.add_argument("--query", help="Search filter for API listings")


async def main() -> int:
    args = parser.parse_args()
    print(f"Starting {args.source} import...\n")
    report = await import_plants(
        ctx={},
        csv_path=args.csv_path,
        max_rows=args.max_rows,
        source=args.source,
        query=args.query,
        triggered_by="manual",
    )
    print(
        f"\nImport finished: read={report.records_read} inserted={report.inserted} "
        f"updated={report.updated} unchanged={report.unchanged} "
        f"skipped={report.skipped} failed={len(report.failures)}"
    )
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
