"""
======================================================================
 DAU Sync Runtime — Version v0.1.0 (Build 2026.10)
======================================================================
"""

from __future__ import annotations

"""
Configuration validation script.

Loads the run configuration exactly as a real run would and reports
problems without connecting to anything.

Design rules:
- No side effects on import
- No messaging session, no GitHub calls
- Validation only (no mutation)
"""

import argparse
import sys
from pathlib import Path

from core.config_loader import load_run_config
from core.errors import ConfigError
from services.messaging.transport import load_transport


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate DAU sync configuration")
    parser.add_argument("--env-file", type=Path, default=None)
    parser.add_argument(
        "--skip-transport",
        action="store_true",
        help="Do not import/build the configured messaging transport",
    )
    return parser.parse_args()


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main() -> int:
    args = parse_args()

    try:
        config = load_run_config(dotenv_path=args.env_file)
        if not args.skip_transport:
            load_transport(config.transport, session_db_path=config.session_db_path)
    except ConfigError as e:
        _error(str(e))
        print("Configuration validation failed.", file=sys.stderr)
        return e.exit_code

    print(f"Configuration validation passed ({len(config.channels)} channel(s)).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
