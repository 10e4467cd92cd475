"""
Session lifecycle events surfaced by the messaging transport.

The transport may emit these from any thread; SessionConnector funnels
them into a single asyncio queue consumed by StabilityGate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class QRNeeded:
    """One-time pairing code; emitted until the platform confirms pairing."""

    code: str


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class Disconnected:
    reason: Optional[str] = None


@dataclass(frozen=True)
class LoggedOut:
    """Server-side revocation. Terminal for the run."""

    reason: Optional[str] = None


ConnectionEvent = Union[QRNeeded, Connected, Disconnected, LoggedOut]


def describe(event: ConnectionEvent) -> str:
    """Short log-friendly label for an event (never includes QR codes)."""
    name = type(event).__name__
    reason = getattr(event, "reason", None)
    if reason:
        return f"{name}({reason})"
    return name
