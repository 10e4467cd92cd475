"""
======================================================================
 DAU Sync Runtime — Version v0.1.0 (Build 2026.10)
======================================================================
"""

from __future__ import annotations

"""
Run one subscriber sync: connect to the messaging platform, aggregate
channel subscriber counts and publish them to GitHub.

Usage:
    python scripts/run_sync.py
    python scripts/run_sync.py --env-file ../.env

Exit codes:
    0 success, 1 unexpected failure, 2 config, 3 auth expired,
    4 connection timeout, 5 aggregation, 6 document conflict,
    7 GitHub API, 130 interrupted
"""

import argparse
import sys
from pathlib import Path

from core.app import run


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish channel subscriber counts")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: search from the working directory)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    if args.env_file and not args.env_file.exists():
        print(f"[CONFIG ERROR] env file not found: {args.env_file}", file=sys.stderr)
        return 2

    return run(dotenv_path=args.env_file)


if __name__ == "__main__":
    sys.exit(main())
