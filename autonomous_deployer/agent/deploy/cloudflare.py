"""Cloudflare Pages deployment adapter."""

from __future__ import annotations

import base64
import hashlib
import json
import mimetypes
from typing import Any

from autonomous_deployer.agent.deploy.base import DeployConfig, DeployedSite, PlatformAdapter
from autonomous_deployer.agent.errors import CredentialsMissing, PlatformAPIError
from autonomous_deployer.agent.models import Platform, ProjectFile

PRODUCTION_BRANCH = "main"
ASSET_BATCH_SIZE = 50


def asset_hash(item: ProjectFile) -> str:
    """Return the content-addressed key Pages stores an asset under."""
    extension = item.path.rsplit(".", 1)[-1] if "." in item.path else ""
    digest = hashlib.sha256(item.content.encode("utf-8") + extension.encode("utf-8"))
    return digest.hexdigest()[:32]


class CloudflarePagesAdapter(PlatformAdapter):
    """Creates a Pages project and publishes files through a direct upload.

    Assets are content-addressed: only hashes the platform reports missing
    are uploaded, then the deployment is created from a ``path -> hash``
    manifest.
    """

    platform = Platform.cloudflare
    api_url = "https://api.cloudflare.com/client/v4"

    def deploy(self, config: DeployConfig, files: list[ProjectFile]) -> DeployedSite:
        """Create or reuse the Pages project, upload assets, then deploy them."""
        if not config.account_id:
            raise CredentialsMissing("cloudflare")
        project_path = f"/accounts/{config.account_id}/pages/projects"
        project = self._ensure_project(project_path, config)
        hashes = {item.path: asset_hash(item) for item in files}
        upload_token = self._upload_token(project_path, config)
        self._upload_assets(upload_token, files, hashes)
        manifest = {f"/{path}": digest for path, digest in hashes.items()}
        deployment = _result(
            self._send(
                "POST",
                f"{project_path}/{config.project_name}/deployments",
                token=config.token,
                files={
                    "branch": (None, PRODUCTION_BRANCH),
                    "manifest": (None, json.dumps(manifest)),
                },
            )
        )
        deployment_id = deployment.get("id") or project.get("id")
        if not deployment_id:
            raise PlatformAPIError(self.platform.value, None, "Deployment response missing id.")
        url = deployment.get("url") or f"https://{config.project_name}.pages.dev"
        return DeployedSite(url=str(url), deployment_id=str(deployment_id))

    def _ensure_project(self, project_path: str, config: DeployConfig) -> dict[str, Any]:
        body = {
            "name": config.project_name,
            "production_branch": PRODUCTION_BRANCH,
            "build_config": {
                "build_command": config.build_command,
                "destination_dir": config.output_directory,
            },
            "deployment_configs": {
                "production": {
                    "env_vars": {
                        key: {"value": value}
                        for key, value in config.environment_variables.items()
                    }
                }
            },
        }
        try:
            return _result(self._send("POST", project_path, token=config.token, json=body))
        except PlatformAPIError as exc:
            if exc.status_code != 409:
                raise
            return _result(
                self._send("GET", f"{project_path}/{config.project_name}", token=config.token)
            )

    def _upload_token(self, project_path: str, config: DeployConfig) -> str:
        payload = self._send(
            "GET", f"{project_path}/{config.project_name}/upload-token", token=config.token
        )
        jwt = _result(payload).get("jwt")
        if not isinstance(jwt, str) or not jwt:
            raise PlatformAPIError(self.platform.value, None, "Upload token response missing jwt.")
        return jwt

    def _upload_assets(
        self, upload_token: str, files: list[ProjectFile], hashes: dict[str, str]
    ) -> None:
        unique = sorted(set(hashes.values()))
        payload = self._send(
            "POST",
            "/pages/assets/check-missing",
            token=upload_token,
            json={"hashes": unique},
        )
        reported = payload.get("result")
        missing = set(reported) if isinstance(reported, list) else set(unique)
        pending = {hashes[item.path]: item for item in files if hashes[item.path] in missing}
        batch = [_asset_payload(digest, item) for digest, item in sorted(pending.items())]
        for start in range(0, len(batch), ASSET_BATCH_SIZE):
            self._send(
                "POST",
                "/pages/assets/upload",
                token=upload_token,
                json=batch[start : start + ASSET_BATCH_SIZE],
            )
        self._send(
            "POST", "/pages/assets/upsert-hashes", token=upload_token, json={"hashes": unique}
        )


def _asset_payload(digest: str, item: ProjectFile) -> dict[str, Any]:
    content_type = mimetypes.guess_type(item.path)[0] or "application/octet-stream"
    return {
        "key": digest,
        "value": base64.b64encode(item.content.encode("utf-8")).decode("ascii"),
        "metadata": {"contentType": content_type},
        "base64": True,
    }


def _result(payload: dict[str, Any]) -> dict[str, Any]:
    result = payload.get("result")
    return result if isinstance(result, dict) else {}
