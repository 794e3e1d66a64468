"""Records-store collaborators: projects, credentials and sessions."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Protocol

from autonomous_deployer.agent.errors import NotFoundError, Unauthorized
from autonomous_deployer.agent.models import Credentials, Project
from autonomous_deployer.agent.settings import default_records_path
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()

_PROJECT_UPDATE_FIELDS = frozenset(
    {"deployment_url", "deployment_platform", "last_deployment", "progress", "status"}
)


class ProjectRepository(Protocol):
    """Project and credential lookups used by the pipeline."""

    def get_project(self, project_id: str) -> Project | None: ...

    def get_credentials(self, user_id: str) -> Credentials: ...

    def update_project(self, project_id: str, **fields: Any) -> Project: ...


class SessionResolver(Protocol):
    """Maps an opaque session token to a user id."""

    def resolve_session(self, token: str) -> str | None: ...


def require_owned_project(
    repository: ProjectRepository,
    user_id: str,
    project_id: str,
) -> Project:
    """Return the project when it exists and belongs to user_id."""
    project = repository.get_project(project_id)
    if project is None or project.user_id != user_id:
        raise NotFoundError("Project not found")
    return project


def require_session(resolver: SessionResolver, token: str | None) -> str:
    """Return the user id for a session token or raise Unauthorized."""
    if not token:
        raise Unauthorized("Unauthorized")
    user_id = resolver.resolve_session(token)
    if not user_id:
        raise Unauthorized("Unauthorized")
    return user_id


class JsonRecordStore:
    """Single JSON document holding projects, credentials and sessions.

    Layout::

        {"projects": [...], "credentials": [...], "sessions": {"<token>": "<user id>"}}
    """

    def __init__(self, path: Path | None = None) -> None:
        """Bind the store to a records file, created lazily on first write."""
        self.path = (path or default_records_path()).expanduser().resolve()

    def get_project(self, project_id: str) -> Project | None:
        """Return one project by id."""
        for item in self._load().get("projects", []):
            if isinstance(item, dict) and str(item.get("id")) == project_id:
                return Project.from_dict(item)
        return None

    def list_projects(self, user_id: str | None = None) -> list[Project]:
        """Return projects, optionally filtered by owner."""
        projects = [
            Project.from_dict(item)
            for item in self._load().get("projects", [])
            if isinstance(item, dict)
        ]
        if user_id is None:
            return projects
        return [project for project in projects if project.user_id == user_id]

    def get_credentials(self, user_id: str) -> Credentials:
        """Return credentials for a user; an empty record when none are stored."""
        for item in self._load().get("credentials", []):
            if isinstance(item, dict) and str(item.get("user_id")) == user_id:
                return Credentials.from_dict(item)
        return Credentials(user_id=user_id)

    def update_project(self, project_id: str, **fields: Any) -> Project:
        """Apply a partial update to one project and persist it."""
        unknown = set(fields) - _PROJECT_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported project fields: {', '.join(sorted(unknown))}")
        document = self._load()
        projects = document.setdefault("projects", [])
        for index, item in enumerate(projects):
            if isinstance(item, dict) and str(item.get("id")) == project_id:
                updated = replace(Project.from_dict(item), **fields)
                projects[index] = updated.to_dict()
                self._save(document)
                LOGGER.info(
                    "Project record updated",
                    extra={"project_id": project_id, "fields": ",".join(sorted(fields))},
                )
                return updated
        raise NotFoundError("Project not found")

    def save_project(self, project: Project) -> Project:
        """Insert or replace a project record."""
        document = self._load()
        projects = [
            item
            for item in document.get("projects", [])
            if not (isinstance(item, dict) and str(item.get("id")) == project.project_id)
        ]
        projects.append(project.to_dict())
        document["projects"] = projects
        self._save(document)
        return project

    def save_credentials(self, credentials: dict[str, Any]) -> Credentials:
        """Insert or replace the credential record of one user."""
        parsed = Credentials.from_dict(credentials)
        document = self._load()
        records = [
            item
            for item in document.get("credentials", [])
            if not (isinstance(item, dict) and str(item.get("user_id")) == parsed.user_id)
        ]
        records.append(dict(credentials))
        document["credentials"] = records
        self._save(document)
        LOGGER.info("Credentials stored", extra={"user_id": parsed.user_id})
        return parsed

    def add_session(self, token: str, user_id: str) -> None:
        """Register a session token for a user."""
        document = self._load()
        sessions = document.setdefault("sessions", {})
        sessions[token] = user_id
        self._save(document)

    def resolve_session(self, token: str) -> str | None:
        """Return the user id bound to token, if any."""
        sessions = self._load().get("sessions", {})
        if not isinstance(sessions, dict):
            return None
        user_id = sessions.get(token)
        return str(user_id) if user_id else None

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Records file {self.path} must contain a JSON object.")
        return payload

    def _save(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        temp_path.replace(self.path)
