"""
tests/test_github_client.py

GitHubClient against an in-memory GitHub (httpx.MockTransport).
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from core.errors import ConflictError, GitHubAPIError
from services.github.client import GitHubClient


def _client(transport: httpx.AsyncBaseTransport, **kwargs) -> GitHubClient:
    return GitHubClient(token="t0ken", owner="octo", repo="menu", transport=transport, **kwargs)


class TestDocuments:
    @pytest.mark.asyncio
    async def test_get_document_decodes_wrapped_base64(self, fake_github) -> None:
        long_text = "# RU Menu\n\n" + "é menu line\n" * 20
        fake_github.write("README.md", long_text)

        doc = await _client(fake_github.transport()).get_document("README.md")

        assert doc.content == long_text
        assert doc.fingerprint == fake_github.files["README.md"]["sha"]
        assert doc.path == "README.md"

    @pytest.mark.asyncio
    async def test_requests_carry_auth_and_branch(self, fake_github) -> None:
        await _client(fake_github.transport(), branch="dev").get_document("README.md")

        request = fake_github.requests[0]
        assert request.headers["Authorization"] == "Bearer t0ken"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.headers["User-Agent"].startswith("dau-sync/")
        assert request.url.path == "/repos/octo/menu/contents/README.md"
        assert request.url.params["ref"] == "dev"

    @pytest.mark.asyncio
    async def test_put_document_sends_sha_and_content(self, fake_github) -> None:
        client = _client(fake_github.transport())
        doc = await client.get_document("README.md")

        await client.put_document("README.md", "new body", doc.fingerprint, "ru-counter: update")

        body = fake_github.puts[0]
        assert body["sha"] == doc.fingerprint
        assert body["message"] == "ru-counter: update"
        assert body["branch"] == "main"
        assert base64.b64decode(body["content"]).decode("utf-8") == "new body"
        assert fake_github.content("README.md") == "new body"

    @pytest.mark.asyncio
    async def test_stale_sha_raises_conflict(self, fake_github) -> None:
        client = _client(fake_github.transport())
        doc = await client.get_document("README.md")
        fake_github.write("README.md", "someone else")

        with pytest.raises(ConflictError):
            await client.put_document("README.md", "mine", doc.fingerprint, "msg")
        assert fake_github.content("README.md") == "someone else"

    @pytest.mark.asyncio
    async def test_missing_file_is_api_error(self, fake_github) -> None:
        with pytest.raises(GitHubAPIError) as excinfo:
            await _client(fake_github.transport()).get_document("NOPE.md")
        assert excinfo.value.status_code == 404
        assert "Not Found" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_server_error_is_api_error(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(GitHubAPIError) as excinfo:
            await _client(transport).get_document("README.md")
        assert excinfo.value.status_code == 500
        assert excinfo.value.exit_code == 7

    @pytest.mark.asyncio
    async def test_network_failure_is_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GitHubAPIError):
            await _client(httpx.MockTransport(handler)).get_document("README.md")


class TestDescription:
    @pytest.mark.asyncio
    async def test_get_description_has_no_fingerprint(self, fake_github) -> None:
        doc = await _client(fake_github.transport()).get_description()
        assert doc.content == "Menu bot"
        assert doc.fingerprint is None

    @pytest.mark.asyncio
    async def test_null_description_reads_as_empty(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"description": None}))
        doc = await _client(transport).get_description()
        assert doc.content == ""

    @pytest.mark.asyncio
    async def test_push_description_patches_repository(self, fake_github) -> None:
        await _client(fake_github.transport()).push_description("description", "With 60 DAU", None, "ignored")

        request = fake_github.requests[-1]
        assert request.method == "PATCH"
        assert request.url.path == "/repos/octo/menu"
        assert json.loads(request.content) == {"description": "With 60 DAU"}
        assert fake_github.description == "With 60 DAU"


def test_token_is_required() -> None:
    with pytest.raises(RuntimeError):
        GitHubClient(token="", owner="octo", repo="menu")
