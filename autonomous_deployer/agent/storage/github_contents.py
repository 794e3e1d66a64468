"""GitHub contents API client used as the versioned file store backend."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from autonomous_deployer.agent.errors import ConcurrencyConflict, FileNotFound, StoreError

logger = logging.getLogger(__name__)

GITHUB_ACCEPT_HEADER = "application/vnd.github.v3+json"


@dataclass(frozen=True)
class RemoteFile:
    """Decoded file content plus its blob sha."""

    path: str
    content: str
    sha: str


@dataclass(frozen=True)
class RepoEntry:
    """One repository listing entry."""

    path: str
    type: str
    sha: str | None = None


class ContentsBackend(Protocol):
    """Content-addressed repository file interface consumed by the store."""

    def get_file(self, owner: str, repo: str, path: str) -> RemoteFile: ...

    def create_file(self, owner: str, repo: str, path: str, content: str, message: str) -> str: ...

    def update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: str,
    ) -> str: ...

    def delete_file(self, owner: str, repo: str, path: str, message: str, sha: str) -> None: ...

    def list_files(
        self, owner: str, repo: str, path: str = "", *, recursive: bool = True
    ) -> list[RepoEntry]: ...


class GitHubContentsClient:
    """Thin GitHub REST client for file-level reads and versioned writes."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        client: httpx.Client | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize client with bearer token and optional shared HTTP client."""
        if not token:
            raise ValueError("GitHub token is required for GitHubContentsClient.")
        self.api_url = api_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": GITHUB_ACCEPT_HEADER,
        }
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def get_file(self, owner: str, repo: str, path: str) -> RemoteFile:
        """Return decoded file content and sha, raising FileNotFound on 404."""
        payload = self._request("GET", self._contents_url(owner, repo, path), path=path)
        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise StoreError(f"{path} is not a file")
        sha = str(payload.get("sha", ""))
        raw_content = payload.get("content")
        if raw_content:
            if payload.get("encoding") == "base64":
                decoded = base64.b64decode(str(raw_content).replace("\n", ""))
                content = _decode_text(path, decoded)
            else:
                content = str(raw_content)
        elif payload.get("download_url"):
            # Files above the contents API size limit are served via download_url.
            response = self._client.get(str(payload["download_url"]), headers=self._headers)
            if response.status_code >= 400:
                raise StoreError(
                    f"Download of {path} failed: {response.status_code} {response.text}",
                    status_code=response.status_code,
                )
            content = _decode_text(path, response.content)
        else:
            content = ""
        return RemoteFile(path=str(payload.get("path", path)), content=content, sha=sha)

    def create_file(self, owner: str, repo: str, path: str, content: str, message: str) -> str:
        """Create a new file and return its sha."""
        body = {"message": message, "content": _encode(content)}
        payload = self._request("PUT", self._contents_url(owner, repo, path), path=path, json=body)
        return _written_sha(payload)

    def update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: str,
    ) -> str:
        """Replace an existing file at the given sha and return the new sha."""
        body = {"message": message, "content": _encode(content), "sha": sha}
        payload = self._request("PUT", self._contents_url(owner, repo, path), path=path, json=body)
        return _written_sha(payload)

    def delete_file(self, owner: str, repo: str, path: str, message: str, sha: str) -> None:
        """Delete a file at the given sha."""
        body = {"message": message, "sha": sha}
        self._request("DELETE", self._contents_url(owner, repo, path), path=path, json=body)

    def list_files(
        self, owner: str, repo: str, path: str = "", *, recursive: bool = True
    ) -> list[RepoEntry]:
        """List repository entries below path, descending into directories."""
        entries: list[RepoEntry] = []
        pending = [path.strip("/")]
        while pending:
            current = pending.pop(0)
            payload = self._request("GET", self._contents_url(owner, repo, current), path=current)
            items = payload if isinstance(payload, list) else [payload]
            for item in items:
                if not isinstance(item, dict):
                    continue
                entry = RepoEntry(
                    path=str(item.get("path", "")),
                    type=str(item.get("type", "file")),
                    sha=item.get("sha"),
                )
                entries.append(entry)
                if recursive and entry.type == "dir":
                    pending.append(entry.path)
        return entries

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self._client.close()

    def _contents_url(self, owner: str, repo: str, path: str) -> str:
        encoded = quote(path.strip("/"), safe="/")
        return f"{self.api_url}/repos/{owner}/{repo}/contents/{encoded}"

    def _request(self, method: str, url: str, *, path: str, json: Any = None) -> Any:
        try:
            response = self._client.request(method, url, headers=self._headers, json=json)
        except httpx.HTTPError as exc:
            raise StoreError(f"GitHub API request failed for {path}: {exc}") from exc
        status = response.status_code
        if status < 400:
            if not response.content:
                return {}
            return response.json()
        body = response.text
        logger.debug("GitHub API error %s for %s %s: %s", status, method, path, body)
        if status == 404:
            raise FileNotFound(path)
        if status == 409:
            raise ConcurrencyConflict(path, body)
        if status == 422 and "sha" in body.lower():
            raise ConcurrencyConflict(path, body)
        raise StoreError(f"GitHub API error: {status} {body}", status_code=status)


def _decode_text(path: str, raw: bytes) -> str:
    """Decode file bytes as UTF-8; binary files are rejected, never mangled."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise StoreError(f"{path} is not UTF-8 text") from exc


def _encode(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def _written_sha(payload: Any) -> str:
    if isinstance(payload, dict):
        content = payload.get("content")
        if isinstance(content, dict) and content.get("sha"):
            return str(content["sha"])
    raise StoreError("GitHub API response did not include the written file sha.")
