"""
Run configuration loader.

Reads the process environment (after loading .env) ONCE and turns it into
plain, immutable values. Nothing else in the runtime reads ambient process
state; components receive these objects through their constructors.

Unlike dashboard-style config, a malformed run configuration is fatal:
every problem raises ConfigError naming the offending variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from core.errors import ConfigError
from core.models import ChannelRef
from core.patches import validate_description_template
from services.messaging.stability import DEFAULT_MAX_WAIT, DEFAULT_STABLE_AFTER
from shared.logging.logger import get_logger
from shared.storage.session_store import DEFAULT_DB_PATH

log = get_logger("core.config_loader")

DEFAULT_TRANSPORT = "services.messaging.whatsapp:create_transport"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class GitHubTarget:
    token: str
    owner: str
    repo: str
    branch: str = "main"
    readme_path: str = "README.md"
    commit_prefix: str = "ru-counter"
    description_template: Optional[str] = None
    inline_dau: bool = False


@dataclass(frozen=True)
class StabilityConfig:
    stable_after: float = DEFAULT_STABLE_AFTER
    max_wait: float = DEFAULT_MAX_WAIT
    settle_seconds: float = 2.0


@dataclass(frozen=True)
class RunConfig:
    channels: Tuple[ChannelRef, ...]
    github: GitHubTarget
    stability: StabilityConfig
    transport: str
    session_db_path: Path = DEFAULT_DB_PATH
    state_path: Optional[Path] = Path("state/last_run.json")
    run_timeout: Optional[float] = None

    def describe(self) -> Dict[str, object]:
        """Loggable view (no secrets)."""
        return {
            "channels": [c.display_name for c in self.channels],
            "repository": f"{self.github.owner}/{self.github.repo}@{self.github.branch}",
            "readme_path": self.github.readme_path,
            "stable_after": self.stability.stable_after,
            "max_wait": self.stability.max_wait,
            "settle_seconds": self.stability.settle_seconds,
            "transport": self.transport,
            "session_db_path": str(self.session_db_path),
        }


# ------------------------------------------------------------
# Value helpers
# ------------------------------------------------------------

def _get(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require(env: Mapping[str, str], key: str) -> str:
    value = _get(env, key)
    if value is None:
        raise ConfigError(f"{key} environment variable not set")
    return value


def _int(env: Mapping[str, str], key: str, *, minimum: int = 0) -> int:
    raw = _require(env, key)
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"invalid {key} value: {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum} (got {value})")
    return value


def _seconds(
    env: Mapping[str, str],
    key: str,
    default: Optional[float],
    *,
    allow_zero: bool = False,
) -> Optional[float]:
    raw = _get(env, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"invalid {key} value: {raw!r}") from e
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{key} must be {'>= 0' if allow_zero else '> 0'} (got {raw})")
    return value


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _get(env, key)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{key} must be a boolean (got {raw!r})")


# ------------------------------------------------------------
# Sections
# ------------------------------------------------------------

def _load_channels(env: Mapping[str, str]) -> Tuple[ChannelRef, ...]:
    count = _int(env, "NUMBER_NEWSLETTERS")

    channels = []
    for i in range(1, count + 1):
        external_id = _require(env, f"NEWSLETTER_JID{i}")
        name = _get(env, f"NEWSLETTER_NAME{i}") or f"Newsletter {i}"
        channels.append(ChannelRef(display_name=name, external_id=external_id))

    return tuple(channels)


def _load_github(env: Mapping[str, str]) -> GitHubTarget:
    try:
        template = validate_description_template(_get(env, "DESCRIPTION_TEMPLATE"))
    except ValueError as e:
        raise ConfigError(f"DESCRIPTION_TEMPLATE: {e}") from e

    return GitHubTarget(
        token=_require(env, "PAT_TOKEN"),
        owner=_require(env, "GITHUB_OWNER"),
        repo=_require(env, "GITHUB_REPO"),
        branch=_get(env, "GITHUB_BRANCH") or "main",
        readme_path=_get(env, "README_PATH") or "README.md",
        commit_prefix=_get(env, "COMMIT_PREFIX") or "ru-counter",
        description_template=template,
        inline_dau=_bool(env, "README_INLINE_DAU", False),
    )


def _load_stability(env: Mapping[str, str]) -> StabilityConfig:
    stable_after = _seconds(env, "STABLE_SECONDS", DEFAULT_STABLE_AFTER)
    max_wait = _seconds(env, "MAX_WAIT_SECONDS", DEFAULT_MAX_WAIT)
    settle = _seconds(env, "SETTLE_SECONDS", 2.0, allow_zero=True)

    if stable_after >= max_wait:
        raise ConfigError(
            f"STABLE_SECONDS ({stable_after:g}) must be smaller than "
            f"MAX_WAIT_SECONDS ({max_wait:g})"
        )

    return StabilityConfig(
        stable_after=stable_after,
        max_wait=max_wait,
        settle_seconds=settle,
    )


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------

def load_github_target(
    env: Optional[Mapping[str, str]] = None,
    *,
    dotenv_path: Optional[Path] = None,
) -> GitHubTarget:
    """GitHub section only, for read-only tooling that never opens a session."""
    if env is None:
        load_dotenv(dotenv_path=dotenv_path)
        env = os.environ
    return _load_github(env)


def load_run_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    dotenv_path: Optional[Path] = None,
) -> RunConfig:
    """
    Build the RunConfig.

    When env is omitted, .env is loaded (existing variables win) and the
    process environment is used.
    """
    if env is None:
        load_dotenv(dotenv_path=dotenv_path)
        env = os.environ
        log.info("Environment variables loaded")

    state_raw = _get(env, "STATE_PATH")
    if state_raw and state_raw.lower() in _FALSE:
        state_path: Optional[Path] = None
    else:
        state_path = Path(state_raw or "state/last_run.json")

    config = RunConfig(
        channels=_load_channels(env),
        github=_load_github(env),
        stability=_load_stability(env),
        transport=_get(env, "MESSAGING_TRANSPORT") or DEFAULT_TRANSPORT,
        session_db_path=Path(_get(env, "SESSION_DB_PATH") or DEFAULT_DB_PATH),
        state_path=state_path,
        run_timeout=_seconds(env, "RUN_TIMEOUT_SECONDS", None),
    )

    log.info(f"[BOOT] Run configuration: {config.describe()}")
    return config
