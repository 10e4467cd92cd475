"""
Run-state snapshot publisher.

Writes the outcome of the latest run (report, error, gate history) as
JSON so cron wrappers and dashboards can inspect it without parsing logs.
Writes are atomic; a failed write is logged and never fails the run.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from shared.logging.logger import get_logger

log = get_logger("shared.state_publisher")


class RunStatePublisher:
    DEFAULT_PATH = Path("state/last_run.json")

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path else self.DEFAULT_PATH

    # ------------------------------------------------------------------
    # Atomic writer
    # ------------------------------------------------------------------

    def _write_atomic(self, path: Path, payload: Any) -> None:
        serialized = json.dumps(payload, indent=2)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp = tempfile.NamedTemporaryFile(
            "w", dir=path.parent, delete=False, encoding="utf-8", suffix=".tmp"
        )
        temp_path = Path(tmp.name)

        try:
            with tmp:
                tmp.write(serialized)
                tmp.flush()
                os.fsync(tmp.fileno())
            temp_path.replace(path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    def publish(
        self,
        *,
        ok: bool,
        report: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        error_type: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        payload: Dict[str, Any] = {
            "ok": ok,
            "finished_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "report": report,
            "error": error,
            "error_type": error_type,
        }
        if extra:
            payload.update(extra)

        try:
            self._write_atomic(self._path, payload)
        except Exception as e:
            log.error(f"Failed to write run state snapshot {self._path}: {e}")
            return False

        log.debug(f"Run state snapshot written to {self._path}")
        return True

    def load(self) -> Optional[Dict[str, Any]]:
        if not self._path.exists():
            return None
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as e:
            log.warning(f"Failed to load run state snapshot: {e}")
            return None
