"""Persistent device/session credential store backed by SQLite."""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from shared.logging.logger import get_logger

log = get_logger("shared.session_store")

DEFAULT_DB_PATH = Path("db/session.db")

# Device table written by whatsmeow (through neonize) into the same file.
WHATSMEOW_STORE = "whatsmeow"
WHATSMEOW_DEVICE_TABLE = "whatsmeow_device"


@dataclass(frozen=True)
class DeviceRecord:
    device_id: str
    credentials: Dict[str, Any]
    updated_at: str


class SessionStore:
    """
    Single-file store for the paired device identity and its credentials.

    Opaque to everything except SessionConnector. Writes can come from
    transport threads, so the connection is shared behind a lock.

    The WhatsApp transport keeps its key material in whatsmeow's own tables
    in this file. A device paired there but missing from `devices` (for
    example one paired by an earlier tool against the same database) is
    still reported by load_device(), and clear() logs it out as well.
    """

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return

            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS devices (
                    device_id TEXT PRIMARY KEY,
                    credentials_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
            self._conn = conn

        log.debug(f"Session store opened at {self._db_path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None

        log.debug("Session store closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("SessionStore used before open()")
        return self._conn

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def _has_table(self, conn: sqlite3.Connection, name: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (name,),
        ).fetchone()
        return row is not None

    def _load_whatsmeow_device(self, conn: sqlite3.Connection) -> Optional[DeviceRecord]:
        if not self._has_table(conn, WHATSMEOW_DEVICE_TABLE):
            return None

        row = conn.execute(
            f"SELECT jid FROM {WHATSMEOW_DEVICE_TABLE} ORDER BY rowid ASC LIMIT 1"
        ).fetchone()
        if row is None or not row["jid"]:
            return None

        return DeviceRecord(
            device_id=row["jid"],
            credentials={"jid": row["jid"], "store": WHATSMEOW_STORE},
            updated_at="",
        )

    def load_device(self) -> Optional[DeviceRecord]:
        """Return the first paired device, if any."""
        with self._lock:
            conn = self._require_conn()
            row = conn.execute(
                """
                SELECT device_id, credentials_json, updated_at
                FROM devices
                ORDER BY rowid ASC
                LIMIT 1
                """
            ).fetchone()

            if row is None:
                return self._load_whatsmeow_device(conn)

        try:
            credentials = json.loads(row["credentials_json"])
        except json.JSONDecodeError as exc:
            log.warning(f"Stored credentials for {row['device_id']} are corrupt: {exc}")
            return None

        return DeviceRecord(
            device_id=row["device_id"],
            credentials=credentials if isinstance(credentials, dict) else {},
            updated_at=row["updated_at"],
        )

    def save_device(self, device_id: str, credentials: Dict[str, Any]) -> None:
        if not device_id:
            raise ValueError("device_id is required")

        now = datetime.now(timezone.utc).isoformat()
        payload = json.dumps(credentials, sort_keys=True)

        with self._lock:
            conn = self._require_conn()
            conn.execute(
                """
                INSERT INTO devices (device_id, credentials_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(device_id) DO UPDATE SET
                    credentials_json = excluded.credentials_json,
                    updated_at = excluded.updated_at
                """,
                (device_id, payload, now),
            )
            conn.commit()

        log.info(f"Persisted credentials for device {device_id}")

    def clear(self) -> int:
        with self._lock:
            conn = self._require_conn()
            removed = conn.execute("DELETE FROM devices").rowcount
            # foreign keys are on, so whatsmeow's per-device tables cascade
            if self._has_table(conn, WHATSMEOW_DEVICE_TABLE):
                removed = max(
                    removed,
                    conn.execute(f"DELETE FROM {WHATSMEOW_DEVICE_TABLE}").rowcount,
                )
            conn.commit()

        log.warning(f"Cleared {removed} stored device session(s)")
        return removed
