"""Post-deploy reachability checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from autonomous_deployer.agent.errors import VerificationFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one reachability check."""

    url: str
    reachable: bool
    status_code: int | None = None
    detail: str | None = None

    def as_error(self) -> VerificationFailed:
        """Return the failure as a typed error for logging and outcomes."""
        return VerificationFailed(self.url, self.status_code, self.detail)


class ReachabilityChecker:
    """Issues a HEAD request against a deployed URL."""

    def __init__(self, client: httpx.Client, *, timeout_seconds: float = 10.0) -> None:
        """Bind checker to a shared HTTP client."""
        self.client = client
        self.timeout_seconds = timeout_seconds

    def check(self, url: str) -> VerificationResult:
        """Return reachable for any 2xx or 3xx response."""
        try:
            response = self.client.head(url, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            logger.info("Reachability check for %s failed: %s", url, exc)
            return VerificationResult(url=url, reachable=False, detail=str(exc))
        reachable = 200 <= response.status_code < 400
        if not reachable:
            logger.info("Reachability check for %s returned %s", url, response.status_code)
        return VerificationResult(url=url, reachable=reachable, status_code=response.status_code)
