#!/usr/bin/env python
"""
Fetch the payroll sheet and print it as JSON.

Writes `{"data": [...], "count": n}`, or `{"error": "..."}` with exit code 1.

Usage:
    python scripts/export_payroll.py
    python scripts/export_payroll.py --output payroll.json
"""
import argparse
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config, configure_logging
from src.data.fetchers import build_fetchers, payroll_payload


def main():
    parser = argparse.ArgumentParser(description="Export payroll data as JSON")
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write to this file instead of stdout"
    )
    args = parser.parse_args()
    configure_logging("WARNING")

    payload = payroll_payload(build_fetchers(cfg=config)["payroll"])
    body = json.dumps(payload, indent=2, default=str)

    if args.output:
        Path(args.output).write_text(body, encoding="utf-8")
    else:
        print(body)

    if "error" in payload:
        sys.exit(1)


if __name__ == "__main__":
    main()
