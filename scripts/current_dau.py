"""
======================================================================
 DAU Sync Runtime — Version v0.1.0 (Build 2026.10)
======================================================================
"""

from __future__ import annotations

"""
Print the DAU currently published in the configured README.

Read-only: no messaging session is opened and nothing is pushed.

Usage:
    python scripts/current_dau.py
"""

import asyncio
import sys

from core.config_loader import load_github_target
from core.errors import PatternNotFound, SyncError
from core.patches import read_current_dau
from services.github.client import GitHubClient


async def fetch_current_dau() -> int:
    target = load_github_target()

    client = GitHubClient(
        token=target.token,
        owner=target.owner,
        repo=target.repo,
        branch=target.branch,
    )
    document = await client.get_document(target.readme_path)
    return read_current_dau(document.content)


def main() -> int:
    try:
        dau = asyncio.run(fetch_current_dau())
    except PatternNotFound as e:
        print(f"[DAU] {e}", file=sys.stderr)
        return 1
    except SyncError as e:
        print(f"[DAU] {type(e).__name__}: {e}", file=sys.stderr)
        return e.exit_code

    print(dau)
    return 0


if __name__ == "__main__":
    sys.exit(main())
