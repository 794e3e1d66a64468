"""Netlify deployment adapter."""

from __future__ import annotations

import io
import zipfile
from typing import Any

from autonomous_deployer.agent.deploy.base import DeployConfig, DeployedSite, PlatformAdapter
from autonomous_deployer.agent.errors import PlatformAPIError
from autonomous_deployer.agent.models import Platform, ProjectFile

NETLIFY_FRAMEWORKS: dict[str, str] = {
    "Next.js": "nextjs",
    "React": "create-react-app",
    "Vue.js": "vue-cli",
    "Svelte": "svelte",
    "Angular": "angular",
    "Gatsby": "gatsby",
    "Hugo": "hugo",
    "Jekyll": "jekyll",
}
DEFAULT_NETLIFY_FRAMEWORK = "static"


def netlify_framework(framework: str) -> str:
    """Map a framework label to the Netlify framework name."""
    return NETLIFY_FRAMEWORKS.get(framework, DEFAULT_NETLIFY_FRAMEWORK)


def build_zip_archive(files: list[ProjectFile]) -> bytes:
    """Pack the file set into an in-memory zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for item in files:
            archive.writestr(item.path, item.content)
    return buffer.getvalue()


class NetlifyAdapter(PlatformAdapter):
    """Creates a Netlify site and uploads the file set as a zip deploy."""

    platform = Platform.netlify
    api_url = "https://api.netlify.com/api/v1"

    def deploy(self, config: DeployConfig, files: list[ProjectFile]) -> DeployedSite:
        """Ensure the site exists, then publish a zip of the files."""
        site = self._ensure_site(config)
        site_id = site.get("id")
        if not site_id:
            raise PlatformAPIError(self.platform.value, None, "Site response missing id.")
        deploy = self._send(
            "POST",
            f"/sites/{site_id}/deploys",
            token=config.token,
            content=build_zip_archive(files),
            headers={"Content-Type": "application/zip"},
        )
        url = site.get("ssl_url") or site.get("url") or deploy.get("ssl_url") or deploy.get("url")
        if not url:
            raise PlatformAPIError(self.platform.value, None, "Site response missing url.")
        return DeployedSite(url=str(url), deployment_id=str(deploy.get("id") or site_id))

    def _ensure_site(self, config: DeployConfig) -> dict[str, Any]:
        body = {
            "name": config.project_name,
            "build_settings": {
                "cmd": config.build_command,
                "dir": config.output_directory,
                "framework": netlify_framework(config.framework),
                "env": dict(config.environment_variables),
            },
        }
        try:
            return self._send("POST", "/sites", token=config.token, json=body)
        except PlatformAPIError as exc:
            # Name taken by an earlier deploy of the same project.
            if exc.status_code != 422:
                raise
            return self._send(
                "GET", f"/sites/{config.project_name}.netlify.app", token=config.token
            )
