#!/usr/bin/env python
"""
Check local sheet snapshots before running the dashboard offline.

For every entity: snapshot present, required columns, optional columns, and
the date range the period windows will see.

Usage:
    python scripts/validate_inputs.py
    python scripts/validate_inputs.py --data-dir /path/to/data --entity sales
"""
import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config, configure_logging, SHEET_SOURCES
from src.data.loader import load_snapshot, snapshot_path
from src.data.schema import validate_schema


def check_entity(entity: str) -> list:
    """Problems found in one entity's snapshot (empty when it is usable)."""
    df = load_snapshot(entity)
    if df is None:
        return [f"no snapshot at {snapshot_path(entity)}"]

    result = validate_schema(df, entity, strict=False)
    coverage = result["coverage"]

    print(f"  rows: {result['total_rows']:,}  columns: {result['total_columns']}")
    if coverage["first"] is not None:
        print(f"  {coverage['column']}: {coverage['first']:%Y-%m-%d} .. {coverage['last']:%Y-%m-%d}")
    if result["missing_optional"]:
        print(f"  ⚠ missing optional: {', '.join(result['missing_optional'])}")

    problems = []
    if not result["is_valid"]:
        problems.append(f"missing required: {', '.join(result['missing_required'])}")
    if result["total_rows"] and coverage["missing_dates"] == result["total_rows"]:
        problems.append(f"no parseable {coverage['column']} values")
    return problems


def main():
    parser = argparse.ArgumentParser(description="Validate sheet snapshots")
    parser.add_argument("--data-dir", type=str, default=None, help="Override data directory")
    parser.add_argument(
        "--entity",
        action="append",
        choices=sorted(SHEET_SOURCES),
        help="Only check this entity (repeatable)"
    )
    args = parser.parse_args()
    configure_logging("WARNING")

    if args.data_dir:
        config.data_dir = Path(args.data_dir)

    print(f"Snapshots: {config.snapshots_dir}")
    failed = {}
    for entity in args.entity or list(SHEET_SOURCES):
        print(f"\n{entity}")
        problems = check_entity(entity)
        for problem in problems:
            print(f"  ✗ {problem}")
        if problems:
            failed[entity] = problems
        else:
            print("  ✓ ok")

    print()
    if failed:
        print(f"✗ {len(failed)} of {len(args.entity or SHEET_SOURCES)} snapshots need attention")
        sys.exit(1)
    print("✓ All snapshots usable")


if __name__ == "__main__":
    main()
