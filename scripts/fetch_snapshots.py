#!/usr/bin/env python
"""
Fetch every sheet and write CSV snapshots for offline use.

Usage:
    python scripts/fetch_snapshots.py
    python scripts/fetch_snapshots.py --entity sales --entity sessions
    python scripts/fetch_snapshots.py --data-dir /path/to/data
"""
import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config, configure_logging, SHEET_SOURCES
from src.data.fetchers import build_fetchers, fetch_all
from src.data.loader import save_snapshot


def main():
    parser = argparse.ArgumentParser(description="Fetch Google Sheets data into CSV snapshots")
    parser.add_argument(
        "--entity",
        action="append",
        choices=sorted(SHEET_SOURCES),
        help="Entity to fetch (repeatable, default: all)"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else None)

    if args.data_dir:
        config.data_dir = Path(args.data_dir)

    missing = config.missing_google_settings()
    if missing:
        print(f"ERROR: missing settings: {', '.join(missing)}")
        print("Set them in the environment or in .env")
        sys.exit(1)

    fetchers = build_fetchers(cfg=config)
    if args.entity:
        fetchers = {entity: fetchers[entity] for entity in args.entity}

    print("Fetching snapshots...")
    print(f"  Output: {config.snapshots_dir}")
    print()

    results = fetch_all(fetchers)

    failed = []
    for entity, result in results.items():
        if result.ok:
            path = save_snapshot(entity, result.data)
            print(f"  ✓ {entity}: {len(result.data):,} rows -> {path.name}")
        else:
            print(f"  ✗ {entity}: {result.error}")
            failed.append(entity)

    print()
    if failed:
        print(f"✗ {len(failed)} of {len(results)} sheets failed")
        sys.exit(1)
    print("✓ All snapshots written")


if __name__ == "__main__":
    main()
