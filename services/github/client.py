import base64
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from core.errors import ConflictError, GitHubAPIError
from core.models import RemoteDocument
from runtime.version import user_agent
from shared.logging.logger import get_logger

log = get_logger("github.client")

DESCRIPTION_REF = "description"


class GitHubClient:
    """
    GitHub REST client for the two remote surfaces this runtime writes.

    Responsibilities:
    - fetch a repository file with its blob SHA (the fingerprint)
    - push a new revision carrying the expected SHA (compare-and-swap)
    - read and set the repository description

    A push against a stale SHA surfaces as ConflictError; every other HTTP
    or transport failure is a GitHubAPIError.
    """

    API_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"

    def __init__(
        self,
        *,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not token:
            raise RuntimeError("GitHub token is required")
        if not owner or not repo:
            raise RuntimeError("GitHub owner and repo are required")

        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._token = token
        self._timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.API_URL,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self._token}",
                "X-GitHub-Api-Version": self.API_VERSION,
                "User-Agent": user_agent(),
            },
        )

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _contents_path(self, path: str) -> str:
        return f"{self._repo_path}/contents/{quote(path.lstrip('/'))}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        what: str,
        **kwargs: Any,
    ) -> httpx.Response:
        async with self._client() as client:
            try:
                r = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to {what}: {e}") from e

        if r.status_code == 409:
            raise ConflictError(f"{what} rejected: {self._error_message(r)}")

        if r.is_error:
            raise GitHubAPIError(
                f"Failed to {what}: HTTP {r.status_code} {self._error_message(r)}",
                status_code=r.status_code,
            )

        return r

    @staticmethod
    def _error_message(r: httpx.Response) -> str:
        try:
            data = r.json()
        except ValueError:
            return r.text[:200]
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return r.text[:200]

    # ------------------------------------------------------------
    # Repository files
    # ------------------------------------------------------------

    async def get_document(self, path: str) -> RemoteDocument:
        r = await self._request(
            "GET",
            self._contents_path(path),
            params={"ref": self.branch},
            what=f"get {path}",
        )
        data = r.json()

        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise GitHubAPIError(f"{path} is not a file")

        encoding = data.get("encoding", "base64")
        raw = data.get("content") or ""
        if encoding != "base64":
            raise GitHubAPIError(f"Unsupported content encoding for {path}: {encoding}")

        try:
            content = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise GitHubAPIError(f"Failed to decode {path} content: {e}") from e

        sha = data.get("sha")
        log.debug(f"Fetched {path}@{self.branch} (sha={sha}, {len(content)} chars)")

        return RemoteDocument(path=path, content=content, fingerprint=sha)

    async def put_document(
        self,
        path: str,
        content: str,
        fingerprint: Optional[str],
        message: str,
    ) -> None:
        payload: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if fingerprint:
            payload["sha"] = fingerprint

        r = await self._request(
            "PUT",
            self._contents_path(path),
            json=payload,
            what=f"update {path}",
        )

        commit = (r.json() or {}).get("commit") or {}
        log.info(f"Updated {path} on {self.branch} (commit={commit.get('sha', '?')})")

    # ------------------------------------------------------------
    # Repository metadata
    # ------------------------------------------------------------

    async def get_description(self, _ref: str = DESCRIPTION_REF) -> RemoteDocument:
        r = await self._request("GET", self._repo_path, what="get repository")
        data = r.json() or {}
        return RemoteDocument(
            path=DESCRIPTION_REF,
            content=data.get("description") or "",
            fingerprint=None,
        )

    async def set_description(self, text: str) -> None:
        await self._request(
            "PATCH",
            self._repo_path,
            json={"description": text},
            what="update repository description",
        )
        log.info("Updated repository description")

    async def push_description(
        self,
        _ref: str,
        content: str,
        _fingerprint: Optional[str],
        _message: str,
    ) -> None:
        """PushFn adapter: descriptions have no revision to compare against."""
        await self.set_description(content)
