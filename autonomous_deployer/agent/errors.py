"""Error taxonomy shared by the deployment pipeline and its surfaces."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for deployment pipeline failures."""


class Unauthorized(PipelineError):
    """Raised when a request carries no valid session."""


class NotFoundError(PipelineError):
    """Raised when a project, task or credentials record is missing."""


class CredentialsMissing(PipelineError):
    """Raised when a required service token is absent for the user."""

    def __init__(self, service: str) -> None:
        super().__init__(f"{service} credentials not configured. Please add them in Settings.")
        self.service = service


class UnsupportedPlatform(ValueError):
    """Raised when a platform name or adapter variant is not supported."""


class PlatformAPIError(PipelineError):
    """Raised by platform adapters on any non-success platform response."""

    def __init__(self, platform: str, status_code: int | None, raw_message: str) -> None:
        prefix = f"{platform} deployment failed"
        if status_code is not None:
            prefix = f"{prefix} ({status_code})"
        super().__init__(f"{prefix}: {raw_message}")
        self.platform = platform
        self.status_code = status_code
        self.raw_message = raw_message


class VerificationFailed(PipelineError):
    """Raised or recorded when a deployed site is not reachable."""

    def __init__(self, url: str, status_code: int | None, detail: str | None = None) -> None:
        reason = f"HTTP {status_code}" if status_code is not None else (detail or "unreachable")
        super().__init__(f"Deployment completed but site not accessible: {url} ({reason})")
        self.url = url
        self.status_code = status_code
        self.detail = detail


class RemediationUnavailable(PipelineError):
    """Raised when no automatic fix could be produced for a failure."""


class RetryExhausted(PipelineError):
    """Raised when the retried deploy after remediation also failed."""

    def __init__(self, original_error: str, retry_error: str) -> None:
        super().__init__(
            f"Deployment failed after auto-fix. Original error: {original_error}. "
            f"Retry error: {retry_error}"
        )
        self.original_error = original_error
        self.retry_error = retry_error


class StoreError(PipelineError):
    """Raised when the versioned file store rejects a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FileNotFound(StoreError):
    """Raised when a path has no stored version."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File not found: {path}", status_code=404)
        self.path = path


class ConcurrencyConflict(StoreError):
    """Raised when a write carries a stale or missing version token."""

    def __init__(self, path: str, detail: str = "") -> None:
        message = f"Concurrent modification detected for {path}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, status_code=409)
        self.path = path


class ProposalParseError(ValueError):
    """Raised when generated output contains no valid structured proposal."""
