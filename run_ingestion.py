#!/usr/bin/env python3
"""
Run program ingestion for one source, a group of sources, or everything.

Usage:
    python run_ingestion.py                  # all sources
    python run_ingestion.py core-national    # national group
    python run_ingestion.py fundo-ambiental --json
    python run_ingestion.py --status
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from dotenv import load_dotenv
from tqdm import tqdm

from apoios.core.config import Settings
from apoios.workers.context import IngestionContext
from apoios.workers.registry import (
    IngestionRegistry,
    expand_source,
    get_available_sources,
    is_valid_source,
    summarize,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID_SOURCE = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discover and ingest public support programs.")
    parser.add_argument("source", nargs="?", default="all", help="Source id or group (default: all)")
    parser.add_argument("--status", action="store_true", help="List available sources and groups")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--db", help="SQLite database path (overrides APOIOS_DB_PATH)")
    return parser.parse_args(argv)


def print_sources() -> None:
    print("=" * 70)
    print("AVAILABLE SOURCES")
    print("=" * 70)
    for descriptor in get_available_sources():
        print(f"  {descriptor['id']:<24} {descriptor['type']:<15} {descriptor['name']}")
        print(f"  {'':<24} {descriptor['description']}")


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    if args.status:
        print_sources()
        return EXIT_OK

    if not is_valid_source(args.source):
        print(f"❌ Invalid source: {args.source}", file=sys.stderr)
        valid = ", ".join(d["id"] for d in get_available_sources())
        print(f"   Valid sources: {valid}", file=sys.stderr)
        return EXIT_INVALID_SOURCE

    settings = Settings.from_env(dotenv=False)
    if args.db:
        settings = replace(settings, database_path=args.db)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    registry = IngestionRegistry(IngestionContext.from_settings(settings))
    targets = expand_source(args.source)

    if not args.json:
        print("=" * 70)
        print(f"INGESTION: {args.source} ({len(targets)} sources)")
        print(f"Database: {settings.database_path}")
        print("=" * 70)

    results = []
    for target in tqdm(targets, desc="Sources", disable=args.json):
        results.append(registry.run_worker(target))

    total = summarize(results)
    failed = [r for r in results if not r.success]

    if args.json:
        print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
        return EXIT_FAILED if failed else EXIT_OK

    print("\n" + "=" * 70)
    print("INGESTION COMPLETE")
    print("=" * 70)
    for result in results:
        marker = "✅" if result.success else "❌"
        stats = result.stats
        print(
            f"{marker} {result.source:<22} found={stats.found} new={stats.new} "
            f"updated={stats.updated} skipped={stats.skipped} errors={stats.errors} ({stats.duration}s)"
        )
        if result.error:
            print(f"   ⚠️  {result.error}")

    print("")
    print(f"📊 Total: found={total.found} new={total.new} updated={total.updated} "
          f"skipped={total.skipped} errors={total.errors}")
    print(f"⏱️  Duration: {total.duration}s")
    print("=" * 70)

    return EXIT_FAILED if failed else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
