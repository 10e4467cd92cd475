# FILE: tests/conftest.py
"""
Pytest configuration for the DAU sync test suite.

Configures:
- pytest-asyncio (installed plugin) for async tests
- console-only logging (no log files from test runs)
- shared fakes for the messaging transport and the GitHub API
"""

import base64
import json
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

os.environ.setdefault("DAU_SYNC_LOG_TO_FILE", "0")

import httpx  # noqa: E402
import pytest  # noqa: E402

from core.models import AggregateReport, ChannelStat  # noqa: E402
from services.messaging.transport import ChannelInfo, PlatformTransport  # noqa: E402

CAPTURED_AT = datetime(2026, 10, 19, 12, 30, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Messaging fakes
# ---------------------------------------------------------------------------


class FakeTransport(PlatformTransport):
    """
    Scripted transport: emits `script` events on connect and answers
    channel lookups from `channels` (external_id -> count or Exception).
    """

    def __init__(
        self,
        channels: Optional[Dict[str, Any]] = None,
        script: Optional[List[Any]] = None,
        rotate_to: Optional[Dict[str, Any]] = None,
    ):
        self.channels = channels or {}
        self.script = list(script or [])
        self.rotate_to = rotate_to
        self.received_credentials: Any = "unset"
        self.lookups: List[str] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.emit: Optional[Callable] = None

    async def connect(self, credentials, emit, save_credentials) -> None:
        self.connect_calls += 1
        self.received_credentials = credentials
        self.emit = emit
        if self.rotate_to is not None:
            save_credentials("device-1", self.rotate_to)
        for event in self.script:
            emit(event)

    async def get_channel_info(self, external_id: str) -> ChannelInfo:
        self.lookups.append(external_id)
        value = self.channels[external_id]
        if isinstance(value, Exception):
            raise value
        return ChannelInfo(name=external_id, subscriber_count=value)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1


def make_fake_transport(session_db_path=None, **kwargs) -> FakeTransport:
    """Factory used by transport-loader tests (conftest:make_fake_transport)."""
    return FakeTransport(**kwargs)


# ---------------------------------------------------------------------------
# GitHub fake
# ---------------------------------------------------------------------------


class FakeGitHub:
    """
    In-memory GitHub contents + repository API behind httpx.MockTransport.

    `before_put` runs ahead of every contents PUT and may mutate the file
    to simulate a concurrent writer.
    """

    def __init__(self, files: Optional[Dict[str, str]] = None, description: str = ""):
        self.files: Dict[str, Dict[str, Any]] = {}
        self.description = description
        self.requests: List[httpx.Request] = []
        self.puts: List[Dict[str, Any]] = []
        self.before_put: Optional[Callable[["FakeGitHub", str], None]] = None
        self._rev = 0
        for path, content in (files or {}).items():
            self.write(path, content)

    def write(self, path: str, content: str) -> str:
        self._rev += 1
        sha = f"sha-{self._rev}"
        self.files[path] = {"content": content, "sha": sha}
        return sha

    def content(self, path: str) -> str:
        return self.files[path]["content"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.split("/contents/", 1)

        if len(parts) == 2:
            path = parts[1]
            if request.method == "GET":
                entry = self.files.get(path)
                if entry is None:
                    return httpx.Response(404, json={"message": "Not Found"})
                encoded = base64.b64encode(entry["content"].encode("utf-8")).decode("ascii")
                # GitHub wraps base64 at 60 chars
                wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
                return httpx.Response(
                    200,
                    json={"type": "file", "encoding": "base64", "content": wrapped, "sha": entry["sha"]},
                )

            if request.method == "PUT":
                if self.before_put:
                    self.before_put(self, path)
                body = json.loads(request.content)
                self.puts.append(body)
                current = self.files.get(path)
                if current and body.get("sha") != current["sha"]:
                    return httpx.Response(
                        409,
                        json={"message": f"{path} does not match {body.get('sha')}"},
                    )
                new_content = base64.b64decode(body["content"]).decode("utf-8")
                sha = self.write(path, new_content)
                return httpx.Response(200, json={"content": {"sha": sha}, "commit": {"sha": f"commit-{sha}"}})

        if request.method == "GET":
            return httpx.Response(200, json={"description": self.description})

        if request.method == "PATCH":
            self.description = json.loads(request.content)["description"]
            return httpx.Response(200, json={"description": self.description})

        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def campus_report() -> AggregateReport:
    return AggregateReport.from_stats(
        [
            ChannelStat("Campus A", "a@newsletter", 10),
            ChannelStat("Campus B", "b@newsletter", 20),
            ChannelStat("Campus C", "c@newsletter", 30),
        ],
        CAPTURED_AT,
    )


@pytest.fixture()
def fake_github() -> FakeGitHub:
    return FakeGitHub(
        files={"README.md": "# RU Menu\n\nDaily menu for students."},
        description="Menu bot",
    )
