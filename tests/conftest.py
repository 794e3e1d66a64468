"""Shared fakes for pipeline tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest

from autonomous_deployer.agent.deploy.base import DeployConfig, DeployedSite
from autonomous_deployer.agent.deploy.verification import VerificationResult
from autonomous_deployer.agent.errors import ConcurrencyConflict, FileNotFound, StoreError
from autonomous_deployer.agent.models import Credentials, Platform, Project, ProjectFile
from autonomous_deployer.agent.orchestrator import DeploymentPipeline
from autonomous_deployer.agent.providers.mock_provider import MockProvider
from autonomous_deployer.agent.settings import PipelineSettings
from autonomous_deployer.agent.storage.github_contents import RemoteFile, RepoEntry
from autonomous_deployer.agent.storage.versioned_store import VersionedFileStore


class InMemoryContents:
    """Contents backend keeping files and sha versions in a dict."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, tuple[str, str]] = {}
        self.writes: list[tuple[str, str, str]] = []
        self.reads = 0
        self.pending_conflicts: dict[str, int] = {}
        self.failing_paths: set[str] = set()
        self._counter = 0
        for path, content in (files or {}).items():
            self.files[path] = (content, self._next_sha())

    def _next_sha(self) -> str:
        self._counter += 1
        return f"sha{self._counter}"

    def content(self, path: str) -> str:
        return self.files[path][0]

    def writes_outside(self, namespace: str = ".prodev") -> list[str]:
        return [path for _kind, path, _msg in self.writes if not path.startswith(f"{namespace}/")]

    def external_edit(self, path: str, content: str) -> None:
        """Simulate another writer changing a file behind the store's back."""
        self.files[path] = (content, self._next_sha())

    def _check_write(self, path: str) -> None:
        if path in self.failing_paths:
            raise StoreError(f"GitHub API error: 500 write rejected for {path}", status_code=500)
        remaining = self.pending_conflicts.get(path, 0)
        if remaining:
            self.pending_conflicts[path] = remaining - 1
            raise ConcurrencyConflict(path, "injected")

    def get_file(self, owner: str, repo: str, path: str) -> RemoteFile:
        self.reads += 1
        if path not in self.files:
            raise FileNotFound(path)
        content, sha = self.files[path]
        return RemoteFile(path=path, content=content, sha=sha)

    def create_file(self, owner: str, repo: str, path: str, content: str, message: str) -> str:
        self._check_write(path)
        if path in self.files:
            raise ConcurrencyConflict(path, "sha wasn't supplied")
        sha = self._next_sha()
        self.files[path] = (content, sha)
        self.writes.append(("create", path, message))
        return sha

    def update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: str,
    ) -> str:
        self._check_write(path)
        if path not in self.files:
            raise FileNotFound(path)
        if self.files[path][1] != sha:
            raise ConcurrencyConflict(path, "sha does not match")
        new_sha = self._next_sha()
        self.files[path] = (content, new_sha)
        self.writes.append(("update", path, message))
        return new_sha

    def delete_file(self, owner: str, repo: str, path: str, message: str, sha: str) -> None:
        self._check_write(path)
        if path not in self.files:
            raise FileNotFound(path)
        if self.files[path][1] != sha:
            raise ConcurrencyConflict(path, "sha does not match")
        del self.files[path]
        self.writes.append(("delete", path, message))

    def list_files(
        self, owner: str, repo: str, path: str = "", *, recursive: bool = True
    ) -> list[RepoEntry]:
        return [
            RepoEntry(path=name, type="file", sha=sha)
            for name, (_content, sha) in sorted(self.files.items())
        ]


class ScriptedAdapter:
    """Platform adapter returning queued sites or raising queued errors."""

    def __init__(self, platform: Platform, results: list[DeployedSite | Exception]) -> None:
        self.platform = platform
        self.results = list(results)
        self.calls: list[tuple[DeployConfig, list[ProjectFile]]] = []

    def deploy(self, config: DeployConfig, files: list[ProjectFile]) -> DeployedSite:
        self.calls.append((config, list(files)))
        if not self.results:
            raise AssertionError("unexpected deploy call")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class ScriptedVerifier:
    """Reachability checker answering from a queue, reachable by default."""

    def __init__(self, answers: list[bool] | None = None) -> None:
        self.answers = list(answers or [])
        self.checked: list[str] = []

    def check(self, url: str) -> VerificationResult:
        self.checked.append(url)
        reachable = self.answers.pop(0) if self.answers else True
        return VerificationResult(
            url=url, reachable=reachable, status_code=200 if reachable else 404
        )


class InMemoryProjects:
    """Project repository keeping records in a dict."""

    def __init__(self, *projects: Project, fail_updates: bool = False) -> None:
        self.projects = {project.project_id: project for project in projects}
        self.fail_updates = fail_updates
        self.updates: list[dict[str, Any]] = []

    def get_project(self, project_id: str) -> Project | None:
        return self.projects.get(project_id)

    def get_credentials(self, user_id: str) -> Credentials:
        return Credentials(user_id=user_id)

    def update_project(self, project_id: str, **fields: Any) -> Project:
        if self.fail_updates:
            raise OSError("records store is read-only")
        self.updates.append(fields)
        updated = replace(self.projects[project_id], **fields)
        self.projects[project_id] = updated
        return updated


@pytest.fixture
def project() -> Project:
    return Project(
        project_id="proj_1",
        user_id="user_1",
        name="My Shop",
        framework="React",
        repository="acme/shop",
        description="Storefront",
    )


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        user_id="user_1",
        github_token="gh-test-token",
        vercel_token="vercel-token",
        netlify_token="netlify-token",
        cloudflare_token="cf-token",
        cloudflare_account_id="acct_1",
        generation_api_key="gen-key",
    )


@pytest.fixture
def contents() -> InMemoryContents:
    return InMemoryContents(
        {
            "package.json": '{"name": "shop", "scripts": {"build": "react-scripts build"}}',
            "src/App.js": "export default function App() { return null }\n",
        }
    )


@pytest.fixture
def store(contents: InMemoryContents) -> VersionedFileStore:
    return VersionedFileStore(contents, "acme", "shop")


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(settle_seconds=0.0)


@pytest.fixture
def make_pipeline(
    contents: InMemoryContents,
    project: Project,
    settings: PipelineSettings,
) -> Callable[..., tuple[DeploymentPipeline, dict[str, Any]]]:
    """Build a pipeline over in-memory collaborators and return it with its fakes."""

    def _build(
        results: list[DeployedSite | Exception] | None = None,
        responses: list[Any] | None = None,
        *,
        platform: Platform = Platform.vercel,
        reachable: list[bool] | None = None,
        projects: InMemoryProjects | None = None,
        pipeline_settings: PipelineSettings | None = None,
    ) -> tuple[DeploymentPipeline, dict[str, Any]]:
        adapter = ScriptedAdapter(platform, results or [])
        provider = MockProvider(responses or [])
        verifier = ScriptedVerifier(reachable)
        repository = projects or InMemoryProjects(project)
        sleeps: list[float] = []
        pipeline = DeploymentPipeline(
            projects=repository,
            adapters={platform: adapter},  # type: ignore[dict-item]
            store_factory=lambda _credentials, _project: VersionedFileStore(
                contents, "acme", "shop"
            ),
            provider_factory=lambda _credentials: provider,
            verifier=verifier,  # type: ignore[arg-type]
            settings=pipeline_settings or settings,
            sleep=sleeps.append,
        )
        fakes = {
            "adapter": adapter,
            "provider": provider,
            "verifier": verifier,
            "projects": repository,
            "sleeps": sleeps,
        }
        return pipeline, fakes

    return _build
