"""Hosting platform adapters and reachability verification."""

from __future__ import annotations

import httpx

from autonomous_deployer.agent.deploy.base import (
    DeployConfig,
    DeployedSite,
    PlatformAdapter,
    project_slug,
    require_adapter,
    resolve_build_settings,
)
from autonomous_deployer.agent.deploy.cloudflare import CloudflarePagesAdapter
from autonomous_deployer.agent.deploy.netlify import NetlifyAdapter
from autonomous_deployer.agent.deploy.vercel import VercelAdapter
from autonomous_deployer.agent.deploy.verification import ReachabilityChecker, VerificationResult
from autonomous_deployer.agent.models import Platform


def default_platform_adapters(client: httpx.Client) -> dict[Platform, PlatformAdapter]:
    """Return one adapter per supported platform sharing an HTTP client."""
    adapters: list[PlatformAdapter] = [
        VercelAdapter(client),
        NetlifyAdapter(client),
        CloudflarePagesAdapter(client),
    ]
    return {item.platform: item for item in adapters}


__all__ = [
    "CloudflarePagesAdapter",
    "DeployConfig",
    "DeployedSite",
    "NetlifyAdapter",
    "PlatformAdapter",
    "ReachabilityChecker",
    "VercelAdapter",
    "VerificationResult",
    "default_platform_adapters",
    "project_slug",
    "require_adapter",
    "resolve_build_settings",
]
