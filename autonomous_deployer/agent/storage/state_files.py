"""Reserved state files kept next to the project sources."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from autonomous_deployer.agent.errors import NotFoundError, PipelineError
from autonomous_deployer.agent.models import (
    Project,
    ProjectMetadata,
    Task,
    TaskImplementation,
    utc_now_iso,
)
from autonomous_deployer.agent.settings import (
    AGENT_MEMORY_FILE,
    PROJECT_METADATA_FILE,
    TASKS_FILE,
)
from autonomous_deployer.agent.storage.versioned_store import VersionedFileStore
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2) + "\n"


def _load_json(content: str | None, default: Any) -> Any:
    if content is None or not content.strip():
        return default
    return json.loads(content)


class TaskStore:
    """Task list persisted as ``tasks.json`` in the reserved namespace."""

    def __init__(self, store: VersionedFileStore, project_id: str) -> None:
        """Bind the task list to one project repository."""
        self.store = store
        self.project_id = project_id
        self.path = store.state_path(TASKS_FILE)

    def load(self) -> list[Task]:
        """Return all tasks in stored order."""
        current = self.store.read_optional(self.path)
        return self._parse(current.content if current is not None else None)

    def get(self, task_id: str) -> Task:
        """Return one task or raise NotFoundError."""
        for task in self.load():
            if task.task_id == task_id:
                return task
        raise NotFoundError(f"Task '{task_id}' not found.")

    def pending(self) -> list[Task]:
        """Return pending tasks in stored order."""
        return [task for task in self.load() if task.status == "pending"]

    def save(self, task: Task) -> Task:
        """Replace a task by id, appending it when unknown."""

        def _replace(tasks: list[Task]) -> list[Task]:
            updated = [task if item.task_id == task.task_id else item for item in tasks]
            if all(item.task_id != task.task_id for item in tasks):
                updated.append(task)
            return updated

        self._mutate(_replace, f"Save task: {task.title}")
        return task

    def append(self, new_tasks: list[Task]) -> list[Task]:
        """Append several tasks in one versioned write."""
        if not new_tasks:
            return []
        self._mutate(
            lambda tasks: [*tasks, *new_tasks],
            f"Add {len(new_tasks)} generated tasks",
        )
        return new_tasks

    def _mutate(self, change: Callable[[list[Task]], list[Task]], message: str) -> None:
        def _transform(current: str | None) -> str:
            tasks = change(self._parse(current))
            return _dump([task.to_dict() for task in tasks])

        self.store.read_modify_write(self.path, _transform, message)

    def _parse(self, content: str | None) -> list[Task]:
        raw = _load_json(content, [])
        if not isinstance(raw, list):
            raise ValueError("tasks.json must contain a JSON array.")
        return [
            Task.from_dict(item, project_id=self.project_id)
            for item in raw
            if isinstance(item, dict)
        ]


class AgentMemory:
    """Learning history kept in ``agent-memory.json``."""

    def __init__(self, store: VersionedFileStore, project_id: str) -> None:
        """Bind memory to one project repository."""
        self.store = store
        self.project_id = project_id
        self.path = store.state_path(AGENT_MEMORY_FILE)

    def load(self) -> dict[str, Any]:
        """Return the memory document, or an empty one."""
        current = self.store.read_optional(self.path)
        raw = _load_json(current.content if current is not None else None, {})
        return raw if isinstance(raw, dict) else {}

    def record_learning(self, task: Task, implementation: TaskImplementation) -> bool:
        """Record what a completed task changed; return False on store failure."""
        timestamp = utc_now_iso()

        def _transform(current: str | None) -> str:
            memory = _load_json(current, {})
            if not isinstance(memory, dict):
                memory = {}
            history = memory.get("taskHistory")
            learnings = memory.get("learnings")
            memory["projectId"] = self.project_id
            memory["taskHistory"] = [
                *(history if isinstance(history, list) else []),
                {"id": task.task_id, "title": task.title, "status": task.status},
            ]
            memory["learnings"] = {
                **(learnings if isinstance(learnings, dict) else {}),
                task.task_id: {
                    "task": task.title,
                    "implementation": implementation.message,
                    "files": [change.path for change in implementation.files],
                    "timestamp": timestamp,
                },
            }
            memory["currentFocus"] = task.title
            memory["lastUpdate"] = timestamp
            return _dump(memory)

        try:
            self.store.read_modify_write(
                self.path, _transform, f"Update agent memory: {task.title}"
            )
        except (PipelineError, ValueError) as exc:
            LOGGER.warning(
                "Agent memory update failed",
                extra={"project_id": self.project_id, "task_id": task.task_id, "error": str(exc)},
            )
            return False
        return True


def write_project_metadata(store: VersionedFileStore, project: Project) -> bool:
    """Mirror project fields into ``project.json``; failures are only logged."""
    payload = _dump(ProjectMetadata.from_project(project).to_dict())
    try:
        store.upsert(store.state_path(PROJECT_METADATA_FILE), payload, "Update project metadata")
    except PipelineError as exc:
        LOGGER.warning(
            "Project metadata mirror failed",
            extra={"project_id": project.project_id, "error": str(exc)},
        )
        return False
    return True
