"""Data models for the deployment, remediation and task workflows."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from autonomous_deployer.agent.errors import CredentialsMissing, UnsupportedPlatform

PROJECT_STATUSES = frozenset({"active", "paused", "completed"})
CODE_QUALITY_TIERS = frozenset({"development", "staging", "production"})
TASK_STATUSES = frozenset({"pending", "in-progress", "completed", "failed"})
TASK_PRIORITIES = frozenset({"low", "medium", "high"})
TASK_TYPES = frozenset({"ai-generated", "manual"})
FIX_OPERATIONS = frozenset({"create", "update"})
CHANGE_OPERATIONS = frozenset({"create", "update", "delete"})

LOG_STATUS_STARTING = "starting"
LOG_STATUS_SUCCESS = "success"
LOG_STATUS_FAILED = "failed"
LOG_STATUS_FIXING = "fixing"
LOG_STATUS_RETRY_FAILED = "retry_failed"
LOG_STATUSES = frozenset(
    {
        LOG_STATUS_STARTING,
        LOG_STATUS_SUCCESS,
        LOG_STATUS_FAILED,
        LOG_STATUS_FIXING,
        LOG_STATUS_RETRY_FAILED,
    }
)
TERMINAL_LOG_STATUSES = frozenset(
    {LOG_STATUS_SUCCESS, LOG_STATUS_FAILED, LOG_STATUS_RETRY_FAILED}
)


def utc_now_iso() -> str:
    """Return the current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=UTC).isoformat()


def new_identifier(prefix: str) -> str:
    """Return a short random identifier with a readable prefix."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _require_string(value: Any, field_name: str) -> str:
    """Validate and return a non-empty string."""
    if not isinstance(value, str):
        raise ValueError(f"Expected '{field_name}' to be a string.")
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"Expected '{field_name}' to be non-empty.")
    return cleaned


def _optional_string(value: Any, field_name: str) -> str | None:
    """Validate an optional string, normalizing blanks to None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected '{field_name}' to be a string.")
    cleaned = value.strip()
    return cleaned or None


def _require_bool(value: Any, field_name: str) -> bool:
    """Validate and return a strict boolean."""
    if not isinstance(value, bool):
        raise ValueError(f"Expected '{field_name}' to be a boolean.")
    return value


def _require_string_list(value: Any, field_name: str) -> list[str]:
    """Validate an optional list of non-empty strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Expected '{field_name}' to be a list.")
    return [_require_string(item, f"{field_name}[{index}]") for index, item in enumerate(value)]


def _require_list(value: Any, field_name: str) -> list[Any]:
    """Validate and return a list value."""
    if not isinstance(value, list):
        raise ValueError(f"Expected '{field_name}' to be a list.")
    return value


def _require_dict(value: Any, field_name: str) -> dict[str, Any]:
    """Validate and return a dictionary object."""
    if not isinstance(value, dict):
        raise ValueError(f"Expected '{field_name}' to be an object.")
    return value


def _require_choice(value: Any, field_name: str, allowed: frozenset[str]) -> str:
    """Validate a string against a closed set of options."""
    cleaned = _require_string(value, field_name).lower()
    if cleaned not in allowed:
        options = ", ".join(sorted(allowed))
        raise ValueError(f"Expected '{field_name}' to be one of: {options}.")
    return cleaned


def _require_repo_path(value: Any, field_name: str) -> str:
    """Validate a repository-relative file path."""
    path = _require_string(value, field_name).replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    if path.startswith("/") or not path:
        raise ValueError(f"Expected '{field_name}' to be a relative path.")
    if any(part in {"", ".", ".."} for part in path.split("/")):
        raise ValueError(f"Expected '{field_name}' to stay inside the repository.")
    return path


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of payload without None values."""
    return {key: value for key, value in payload.items() if value is not None}


class Platform(str, Enum):
    """Supported hosting platforms."""

    vercel = "vercel"
    netlify = "netlify"
    cloudflare = "cloudflare"

    @classmethod
    def parse(cls, value: str | Platform) -> Platform:
        """Parse a platform name, rejecting unknown values."""
        if isinstance(value, Platform):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(item.value for item in cls)
            raise UnsupportedPlatform(
                f"Unsupported deployment platform '{value}'. Allowed: {allowed}"
            ) from None


@dataclass(frozen=True)
class Project:
    """Project record as seen by the pipeline."""

    project_id: str
    user_id: str
    name: str
    framework: str
    repository: str
    description: str = ""
    status: str = "active"
    progress: int = 0
    deployment_url: str | None = None
    deployment_platform: str | None = None
    last_deployment: str | None = None
    autonomous_mode: bool = False
    auto_approve: bool = False
    code_quality: str = "development"

    def repository_ref(self) -> tuple[str, str]:
        """Return ``(owner, repo)`` from the repository reference."""
        cleaned = self.repository.strip().rstrip("/")
        if cleaned.endswith(".git"):
            cleaned = cleaned[: -len(".git")]
        parts = [part for part in cleaned.split("/") if part]
        if len(parts) < 2:
            raise ValueError(
                f"Project '{self.project_id}' repository must look like 'owner/name'."
            )
        return parts[-2], parts[-1]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        """Create a project from a records-store payload."""
        progress = data.get("progress", 0)
        if not isinstance(progress, int) or isinstance(progress, bool):
            raise ValueError("Expected 'progress' to be an integer.")
        return cls(
            project_id=_require_string(data.get("id"), "id"),
            user_id=_require_string(str(data.get("user_id", "")), "user_id"),
            name=_require_string(data.get("name"), "name"),
            framework=_require_string(data.get("framework"), "framework"),
            repository=_require_string(data.get("repository"), "repository"),
            description=_optional_string(data.get("description"), "description") or "",
            status=_require_choice(data.get("status", "active"), "status", PROJECT_STATUSES),
            progress=progress,
            deployment_url=_optional_string(data.get("deployment_url"), "deployment_url"),
            deployment_platform=_optional_string(
                data.get("deployment_platform"), "deployment_platform"
            ),
            last_deployment=_optional_string(data.get("last_deployment"), "last_deployment"),
            autonomous_mode=_require_bool(data.get("autonomous_mode", False), "autonomous_mode"),
            auto_approve=_require_bool(data.get("auto_approve", False), "auto_approve"),
            code_quality=_require_choice(
                data.get("code_quality", "development"), "code_quality", CODE_QUALITY_TIERS
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize project into records-store payload."""
        return {
            "id": self.project_id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "framework": self.framework,
            "repository": self.repository,
            "status": self.status,
            "progress": self.progress,
            "deployment_url": self.deployment_url,
            "deployment_platform": self.deployment_platform,
            "last_deployment": self.last_deployment,
            "autonomous_mode": self.autonomous_mode,
            "auto_approve": self.auto_approve,
            "code_quality": self.code_quality,
        }


@dataclass(frozen=True)
class Credentials:
    """Per-user service tokens. Read-only from the pipeline's perspective."""

    user_id: str
    github_token: str | None = None
    vercel_token: str | None = None
    vercel_team_id: str | None = None
    netlify_token: str | None = None
    cloudflare_token: str | None = None
    cloudflare_account_id: str | None = None
    generation_api_key: str | None = None

    def token_for(self, platform: Platform) -> str:
        """Return the platform bearer token or raise CredentialsMissing."""
        token = {
            Platform.vercel: self.vercel_token,
            Platform.netlify: self.netlify_token,
            Platform.cloudflare: self.cloudflare_token,
        }[platform]
        if not token:
            raise CredentialsMissing(platform.value)
        return token

    def require_github_token(self) -> str:
        """Return the versioned-store token or raise CredentialsMissing."""
        if not self.github_token:
            raise CredentialsMissing("github")
        return self.github_token

    def require_generation_key(self) -> str:
        """Return the generation-service key or raise CredentialsMissing."""
        if not self.generation_api_key:
            raise CredentialsMissing("openai")
        return self.generation_api_key

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credentials:
        """Create credentials from a records-store payload."""
        return cls(
            user_id=_require_string(str(data.get("user_id", "")), "user_id"),
            github_token=_optional_string(data.get("github_token"), "github_token"),
            vercel_token=_optional_string(data.get("vercel_token"), "vercel_token"),
            vercel_team_id=_optional_string(data.get("vercel_team_id"), "vercel_team_id"),
            netlify_token=_optional_string(data.get("netlify_token"), "netlify_token"),
            cloudflare_token=_optional_string(data.get("cloudflare_token"), "cloudflare_token"),
            cloudflare_account_id=_optional_string(
                data.get("cloudflare_account_id"), "cloudflare_account_id"
            ),
            generation_api_key=_optional_string(
                data.get("generation_api_key"), "generation_api_key"
            ),
        )


@dataclass(frozen=True)
class ProjectFile:
    """One file of a project snapshot."""

    path: str
    content: str


@dataclass(frozen=True)
class DeploymentLogEntry:
    """Immutable audit-trail record for one pipeline transition."""

    project_id: str
    platform: str
    status: str
    message: str
    timestamp: str
    attempt_id: str
    deployment_url: str | None = None
    deployment_id: str | None = None
    error: str | None = None
    original_error: str | None = None
    files_fixed: int | None = None
    previous_hash: str | None = None
    entry_hash: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Return whether this entry closes a deployment attempt."""
        return self.status in TERMINAL_LOG_STATUSES

    def unsealed_dict(self) -> dict[str, Any]:
        """Return the payload covered by the entry hash."""
        payload = self.to_dict()
        payload.pop("entryHash", None)
        return payload

    def with_hashes(self, previous_hash: str | None, entry_hash: str) -> DeploymentLogEntry:
        """Return a copy sealed into the hash chain."""
        return replace(self, previous_hash=previous_hash, entry_hash=entry_hash)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeploymentLogEntry:
        """Create an entry from persisted log JSON."""
        files_fixed = data.get("filesFixed")
        if files_fixed is not None and (
            not isinstance(files_fixed, int) or isinstance(files_fixed, bool)
        ):
            raise ValueError("Expected 'filesFixed' to be an integer.")
        return cls(
            project_id=_require_string(str(data.get("projectId", "")), "projectId"),
            platform=_require_string(data.get("platform"), "platform"),
            status=_require_choice(data.get("status"), "status", LOG_STATUSES),
            message=_require_string(data.get("message"), "message"),
            timestamp=_require_string(data.get("timestamp"), "timestamp"),
            attempt_id=_optional_string(data.get("attemptId"), "attemptId") or "legacy",
            deployment_url=_optional_string(data.get("deploymentUrl"), "deploymentUrl"),
            deployment_id=_optional_string(data.get("deploymentId"), "deploymentId"),
            error=_optional_string(data.get("error"), "error"),
            original_error=_optional_string(data.get("originalError"), "originalError"),
            files_fixed=files_fixed,
            previous_hash=_optional_string(data.get("previousHash"), "previousHash"),
            entry_hash=_optional_string(data.get("entryHash"), "entryHash"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize entry using the persisted camelCase layout."""
        return _drop_none(
            {
                "projectId": self.project_id,
                "platform": self.platform,
                "status": self.status,
                "message": self.message,
                "timestamp": self.timestamp,
                "attemptId": self.attempt_id,
                "deploymentUrl": self.deployment_url,
                "deploymentId": self.deployment_id,
                "error": self.error,
                "originalError": self.original_error,
                "filesFixed": self.files_fixed,
                "previousHash": self.previous_hash,
                "entryHash": self.entry_hash,
            }
        )


@dataclass(frozen=True)
class FileOperation:
    """One file write proposed by remediation."""

    path: str
    content: str
    operation: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, index: int = 0) -> FileOperation:
        """Validate one proposed file operation."""
        prefix = f"files[{index}]"
        content = data.get("content")
        if not isinstance(content, str):
            raise ValueError(f"Expected '{prefix}.content' to be a string.")
        return cls(
            path=_require_repo_path(data.get("path"), f"{prefix}.path"),
            content=content,
            operation=_require_choice(
                data.get("operation", "update"), f"{prefix}.operation", FIX_OPERATIONS
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize file operation."""
        return {"path": self.path, "content": self.content, "operation": self.operation}


@dataclass(frozen=True)
class FixProposal:
    """Structured remediation proposal produced for one failure."""

    can_fix: bool
    description: str
    files: tuple[FileOperation, ...] = ()
    commit_message: str = ""

    @classmethod
    def unavailable(cls, description: str) -> FixProposal:
        """Return a proposal that must never trigger writes or retries."""
        return cls(can_fix=False, description=description)

    @property
    def is_actionable(self) -> bool:
        """Return whether the proposal may be applied."""
        return self.can_fix and bool(self.files)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixProposal:
        """Validate a model-produced fix proposal object."""
        can_fix = _require_bool(data.get("canFix"), "canFix")
        description = _optional_string(data.get("description"), "description") or ""
        raw_files = data.get("files", [])
        files = tuple(
            FileOperation.from_dict(_require_dict(item, f"files[{index}]"), index=index)
            for index, item in enumerate(_require_list(raw_files, "files"))
        )
        commit_message = _optional_string(data.get("commitMessage"), "commitMessage") or ""
        if can_fix and not files:
            can_fix = False
        return cls(
            can_fix=can_fix,
            description=description or ("No automatic fix available" if not can_fix else ""),
            files=files,
            commit_message=commit_message,
        )


@dataclass(frozen=True)
class FileChange:
    """One file change produced by a task implementation."""

    path: str
    operation: str
    content: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, index: int = 0) -> FileChange:
        """Validate one implementation file change."""
        prefix = f"files[{index}]"
        operation = _require_choice(
            data.get("operation", "update"), f"{prefix}.operation", CHANGE_OPERATIONS
        )
        content = data.get("content", "")
        if operation != "delete" and not isinstance(content, str):
            raise ValueError(f"Expected '{prefix}.content' to be a string.")
        return cls(
            path=_require_repo_path(data.get("path"), f"{prefix}.path"),
            operation=operation,
            content=content if isinstance(content, str) else "",
        )


@dataclass(frozen=True)
class TaskImplementation:
    """Generated implementation for one development task."""

    files: tuple[FileChange, ...]
    message: str
    commit_message: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskImplementation:
        """Validate a model-produced implementation object."""
        raw_files = _require_list(data.get("files"), "files")
        return cls(
            files=tuple(
                FileChange.from_dict(_require_dict(item, f"files[{index}]"), index=index)
                for index, item in enumerate(raw_files)
            ),
            message=_require_string(data.get("message"), "message"),
            commit_message=_require_string(data.get("commitMessage"), "commitMessage"),
        )


@dataclass(frozen=True)
class Task:
    """Development task tracked in the project repository."""

    task_id: str
    project_id: str
    title: str
    description: str
    status: str = "pending"
    priority: str = "medium"
    type: str = "manual"
    estimated_time: str = ""
    files: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()
    context: str = ""
    parent_task_id: str | None = None
    subtasks: tuple[Task, ...] = ()
    error: str | None = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def with_status(self, status: str, *, error: str | None = None) -> Task:
        """Return a copy in a new lifecycle state."""
        if status not in TASK_STATUSES:
            raise ValueError(f"Unknown task status '{status}'.")
        return replace(self, status=status, error=error, updated_at=utc_now_iso())

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, project_id: str | None = None) -> Task:
        """Create a task from persisted ``tasks.json`` content."""
        resolved_project = project_id or _require_string(
            str(data.get("projectId", "")), "projectId"
        )
        subtasks = tuple(
            cls.from_dict(_require_dict(item, f"subtasks[{index}]"), project_id=resolved_project)
            for index, item in enumerate(_require_list(data.get("subtasks", []), "subtasks"))
        )
        return cls(
            task_id=_require_string(data.get("id"), "id"),
            project_id=resolved_project,
            title=_require_string(data.get("title"), "title"),
            description=_optional_string(data.get("description"), "description") or "",
            status=_require_choice(data.get("status", "pending"), "status", TASK_STATUSES),
            priority=_require_choice(data.get("priority", "medium"), "priority", TASK_PRIORITIES),
            type=_require_choice(data.get("type", "manual"), "type", TASK_TYPES),
            estimated_time=_optional_string(data.get("estimatedTime"), "estimatedTime") or "",
            files=tuple(_require_string_list(data.get("files"), "files")),
            dependencies=tuple(_require_string_list(data.get("dependencies"), "dependencies")),
            operations=tuple(_require_string_list(data.get("operations"), "operations")),
            context=_optional_string(data.get("context"), "context") or "",
            parent_task_id=_optional_string(data.get("parentTaskId"), "parentTaskId"),
            subtasks=subtasks,
            error=_optional_string(data.get("error"), "error"),
            created_at=_optional_string(data.get("createdAt"), "createdAt") or utc_now_iso(),
            updated_at=_optional_string(data.get("updatedAt"), "updatedAt") or utc_now_iso(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize task using the persisted camelCase layout."""
        return _drop_none(
            {
                "id": self.task_id,
                "projectId": self.project_id,
                "title": self.title,
                "description": self.description,
                "status": self.status,
                "priority": self.priority,
                "type": self.type,
                "estimatedTime": self.estimated_time,
                "files": list(self.files),
                "dependencies": list(self.dependencies),
                "operations": list(self.operations),
                "context": self.context,
                "parentTaskId": self.parent_task_id,
                "subtasks": [item.to_dict() for item in self.subtasks],
                "error": self.error,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )


@dataclass(frozen=True)
class ProjectMetadata:
    """Mirror of project fields stored as ``project.json`` in the repository."""

    project_id: str
    name: str
    description: str
    framework: str
    repository: str
    deployment_url: str | None
    deployment_platform: str | None
    last_deployment: str | None

    @classmethod
    def from_project(cls, project: Project) -> ProjectMetadata:
        """Build the mirror from a project record."""
        return cls(
            project_id=project.project_id,
            name=project.name,
            description=project.description,
            framework=project.framework,
            repository=project.repository,
            deployment_url=project.deployment_url,
            deployment_platform=project.deployment_platform,
            last_deployment=project.last_deployment,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize mirror using the persisted camelCase layout."""
        return {
            "id": self.project_id,
            "name": self.name,
            "description": self.description,
            "framework": self.framework,
            "repository": self.repository,
            "deploymentUrl": self.deployment_url,
            "deploymentPlatform": self.deployment_platform,
            "lastDeployment": self.last_deployment,
            "updatedAt": utc_now_iso(),
        }
