"""Vercel deployment adapter."""

from __future__ import annotations

import base64

from autonomous_deployer.agent.deploy.base import DeployConfig, DeployedSite, PlatformAdapter
from autonomous_deployer.agent.errors import PlatformAPIError
from autonomous_deployer.agent.models import Platform, ProjectFile

VERCEL_FRAMEWORKS: dict[str, str] = {
    "Next.js": "nextjs",
    "React": "create-react-app",
    "Vue.js": "vue",
    "Svelte": "svelte",
    "SvelteKit": "sveltekit",
    "Angular": "angular",
    "Nuxt.js": "nuxtjs",
    "Gatsby": "gatsby",
    "Remix": "remix",
    "Astro": "astro",
    "Vite": "vite",
    "Preact": "preact",
    "Solid": "solidstart",
    "Ember": "ember",
    "Hugo": "hugo",
    "Jekyll": "jekyll",
    "Docusaurus": "docusaurus-2",
    "Storybook": "storybook",
}
DEFAULT_VERCEL_FRAMEWORK = "nextjs"


def vercel_framework(framework: str) -> str:
    """Map a framework label to the Vercel preset name."""
    return VERCEL_FRAMEWORKS.get(framework, DEFAULT_VERCEL_FRAMEWORK)


class VercelAdapter(PlatformAdapter):
    """Creates Vercel deployments from inline base64 file uploads."""

    platform = Platform.vercel
    api_url = "https://api.vercel.com"

    def deploy(self, config: DeployConfig, files: list[ProjectFile]) -> DeployedSite:
        """Upload all files in one deployment request."""
        body = {
            "name": config.project_name,
            "files": [
                {
                    "file": item.path,
                    "data": base64.b64encode(item.content.encode("utf-8")).decode("ascii"),
                    "encoding": "base64",
                }
                for item in files
            ],
            "projectSettings": {
                "framework": vercel_framework(config.framework),
                "buildCommand": config.build_command,
                "outputDirectory": config.output_directory,
            },
            "env": dict(config.environment_variables),
        }
        params = {"teamId": config.team_id} if config.team_id else None
        payload = self._send(
            "POST", "/v13/deployments", token=config.token, json=body, params=params
        )
        url = payload.get("url")
        deployment_id = payload.get("id")
        if not url or not deployment_id:
            raise PlatformAPIError(
                self.platform.value, None, "Deployment response missing url or id."
            )
        url = str(url)
        if not url.startswith(("https://", "http://")):
            url = f"https://{url}"
        return DeployedSite(url=url, deployment_id=str(deployment_id))
