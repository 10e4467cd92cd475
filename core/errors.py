"""
Run failure taxonomy.

Every fatal condition is a SyncError subclass carrying the process exit
code the entrypoint reports. PatternNotFound is deliberately NOT a
SyncError: a missing pattern selects a PatchSpec fallback.
"""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for fatal run failures."""

    exit_code: int = 1


class ConfigError(SyncError):
    """Malformed or missing configuration."""

    exit_code = 2


class AuthExpired(SyncError):
    """The platform revoked the session; re-pairing is required."""

    exit_code = 3


class ConnectionTimeout(SyncError):
    """The session never became stable within the overall wait bound."""

    exit_code = 4


class AggregationError(SyncError):
    """A channel lookup failed; the whole report is discarded."""

    exit_code = 5


class ConflictError(SyncError):
    """The remote document changed between fetch and push."""

    exit_code = 6


class GitHubAPIError(SyncError):
    """Non-conflict failure talking to the document host."""

    exit_code = 7

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PatternNotFound(LookupError):
    """A locate pattern did not match the content."""
