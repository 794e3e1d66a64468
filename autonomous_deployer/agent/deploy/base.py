"""Platform adapter abstractions and shared build-setting tables."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from autonomous_deployer.agent.errors import PlatformAPIError, UnsupportedPlatform
from autonomous_deployer.agent.models import Platform, ProjectFile

logger = logging.getLogger(__name__)

DEFAULT_BUILD_COMMAND = "npm run build"
DEFAULT_OUTPUT_DIRECTORY = "build"

BUILD_COMMANDS: dict[str, str] = {
    "Next.js": "npm run build",
    "React": "npm run build",
    "Vue.js": "npm run build",
    "Svelte": "npm run build",
    "Angular": "npm run build",
}

OUTPUT_DIRECTORIES: dict[str, str] = {
    "Next.js": "out",
    "React": "build",
    "Vue.js": "dist",
    "Svelte": "public",
    "Angular": "dist",
}

_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def project_slug(name: str) -> str:
    """Return a platform-safe project name derived from a display name."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    slug = _SLUG_INVALID.sub("", slug)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    if not slug:
        raise ValueError(f"Project name '{name}' does not produce a usable slug.")
    return slug


def resolve_build_settings(framework: str) -> tuple[str, str]:
    """Return ``(build_command, output_directory)`` for a framework label."""
    return (
        BUILD_COMMANDS.get(framework, DEFAULT_BUILD_COMMAND),
        OUTPUT_DIRECTORIES.get(framework, DEFAULT_OUTPUT_DIRECTORY),
    )


@dataclass(frozen=True)
class DeployConfig:
    """Inputs one adapter needs to publish a file set."""

    token: str
    project_name: str
    framework: str
    build_command: str = DEFAULT_BUILD_COMMAND
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY
    environment_variables: dict[str, str] = field(default_factory=dict)
    team_id: str | None = None
    account_id: str | None = None


@dataclass(frozen=True)
class DeployedSite:
    """Address and platform identifier of a finished deployment."""

    url: str
    deployment_id: str


class PlatformAdapter(ABC):
    """Publishes a snapshot of project files to one hosting platform."""

    platform: Platform
    api_url: str

    def __init__(self, client: httpx.Client, *, api_url: str | None = None) -> None:
        """Bind adapter to a shared HTTP client."""
        self.client = client
        if api_url is not None:
            self.api_url = api_url.rstrip("/")

    @abstractmethod
    def deploy(self, config: DeployConfig, files: list[ProjectFile]) -> DeployedSite:
        """Deploy the files and return the resulting site."""

    def _send(self, method: str, path: str, *, token: str, **kwargs: Any) -> dict[str, Any]:
        """Perform one platform request and return its JSON object body."""
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        url = f"{self.api_url}{path}"
        try:
            response = self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(self.platform.value, None, str(exc)) from exc
        if response.status_code >= 400:
            logger.debug(
                "%s API error %s for %s: %s",
                self.platform.value,
                response.status_code,
                path,
                response.text,
            )
            raise PlatformAPIError(self.platform.value, response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise PlatformAPIError(
                self.platform.value,
                response.status_code,
                f"Invalid JSON response: {response.text[:200]}",
            ) from exc
        if not isinstance(payload, dict):
            raise PlatformAPIError(
                self.platform.value, response.status_code, "Expected a JSON object response."
            )
        return payload


def require_adapter(
    adapters: dict[Platform, PlatformAdapter],
    platform: Platform,
) -> PlatformAdapter:
    """Resolve the adapter for a platform or raise UnsupportedPlatform."""
    adapter = adapters.get(platform)
    if adapter is None:
        allowed = ", ".join(sorted(item.value for item in adapters))
        raise UnsupportedPlatform(
            f"No adapter registered for platform '{platform.value}'. Allowed: {allowed}"
        )
    return adapter
