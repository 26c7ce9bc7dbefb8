#!/usr/bin/env python3
"""
One-off script to fill catalog gaps from the external sources.

Usage (inside the API container):
    python scripts/run_enrich.py
    python scripts/run_enrich.py --limit 200
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

from app.tasks.enrich_catalog import enrich_catalog

parser = argparse.ArgumentParser(description="HerboLive catalog enrichment")
parser.add_argument("--limit", type=int, help="Stop after this many plants")


async def main() -> None:
    args = parser.parse_args()
    print("Starting catalog enrichment...\n")
    stats = await enrich_catalog(ctx={}, triggered_by="manual", limit=args.limit)
    print(f"\nEnrichment finished: {stats}")


if __name__ == "__main__":
    asyncio.run(main())
