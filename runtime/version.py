"""Build identity for DAU Sync.

Read by the entrypoint banner, the GitHub User-Agent header and the run
state snapshot. Import-safe.
"""

from __future__ import annotations

PROJECT_NAME = "DAU Sync Runtime"
PACKAGE = "dau-sync"
VERSION = "v0.1.0"
BUILD = "2026.10"
LICENSE = "Proprietary"

__all__ = [
    "PROJECT_NAME",
    "PACKAGE",
    "VERSION",
    "BUILD",
    "LICENSE",
    "as_dict",
    "as_string",
    "user_agent",
]


def as_dict() -> dict[str, str]:
    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
    }


def as_string() -> str:
    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"


def user_agent() -> str:
    """HTTP User-Agent, e.g. dau-sync/0.1.0."""
    return f"{PACKAGE}/{VERSION.lstrip('v')}"
