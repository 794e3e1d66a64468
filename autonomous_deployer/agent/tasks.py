"""Development task execution against the project repository."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from autonomous_deployer.agent.errors import PipelineError, ProposalParseError
from autonomous_deployer.agent.models import (
    Project,
    Task,
    TaskImplementation,
    new_identifier,
)
from autonomous_deployer.agent.prompts import (
    IMPLEMENTATION_SYSTEM_PROMPT,
    TASK_GENERATION_SYSTEM_PROMPT,
    build_implementation_prompt,
    build_task_generation_prompt,
)
from autonomous_deployer.agent.providers.base import LLMProvider
from autonomous_deployer.agent.remediation import extract_json_object, select_context_files
from autonomous_deployer.agent.storage import AgentMemory, TaskStore, VersionedFileStore
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()


@dataclass(frozen=True)
class TaskOutcome:
    """Per-task result of single or bulk execution."""

    task_id: str
    title: str
    success: bool
    status: str
    message: str | None = None
    files_changed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize outcome for CLI and API responses."""
        payload: dict[str, Any] = {
            "taskId": self.task_id,
            "title": self.title,
            "success": self.success,
            "status": self.status,
            "filesChanged": self.files_changed,
        }
        if self.message is not None:
            payload["message"] = self.message
        if self.error is not None:
            payload["error"] = self.error
        return payload


def parse_implementation(raw_text: str) -> TaskImplementation:
    """Strictly parse model output into a TaskImplementation."""
    payload = extract_json_object(raw_text)
    try:
        return TaskImplementation.from_dict(payload)
    except ValueError as exc:
        raise ProposalParseError(f"invalid implementation: {exc}") from exc


class TaskExecutionEngine:
    """Implements tasks one at a time and persists their final state."""

    def __init__(
        self,
        store: VersionedFileStore,
        provider: LLMProvider,
        *,
        max_context_files: int = 10,
        max_chars_per_file: int = 2_000,
    ) -> None:
        """Bind engine to one project repository and a generation provider."""
        self.store = store
        self.provider = provider
        self.max_context_files = max_context_files
        self.max_chars_per_file = max_chars_per_file

    def implement(self, project: Project, task_id: str) -> TaskOutcome:
        """Implement one task; raises NotFoundError when the task is unknown."""
        task = TaskStore(self.store, project.project_id).get(task_id)
        return self._run(project, task)

    def implement_all(self, project: Project) -> list[TaskOutcome]:
        """Implement every pending task sequentially with isolated failures."""
        pending = TaskStore(self.store, project.project_id).pending()
        LOGGER.info(
            "Bulk task run started",
            extra={"project_id": project.project_id, "task_count": len(pending)},
        )
        return [self._run(project, task) for task in pending]

    def generate_tasks(self, project: Project, user_context: str | None = None) -> list[Task]:
        """Generate new pending tasks and append them to the task list."""
        tasks = TaskStore(self.store, project.project_id)
        existing = tasks.load()
        raw = self.provider.generate_text(
            TASK_GENERATION_SYSTEM_PROMPT,
            build_task_generation_prompt(project, existing, self.store.list_paths(), user_context),
        )
        payload = extract_json_object(raw)
        items = payload.get("tasks")
        if not isinstance(items, list) or not items:
            raise ProposalParseError("generated output contains no tasks")
        generated: list[Task] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ProposalParseError(f"tasks[{index}] is not an object")
            try:
                generated.append(
                    Task.from_dict(
                        {
                            **item,
                            "id": new_identifier("task"),
                            "status": "pending",
                            "type": "ai-generated",
                            "operations": item.get("operations") or ["read"],
                            "context": item.get("context") or user_context or "",
                            "subtasks": [],
                        },
                        project_id=project.project_id,
                    )
                )
            except ValueError as exc:
                raise ProposalParseError(f"tasks[{index}]: {exc}") from exc
        tasks.append(generated)
        LOGGER.info(
            "Tasks generated",
            extra={"project_id": project.project_id, "task_count": len(generated)},
        )
        return generated

    def _run(self, project: Project, task: Task) -> TaskOutcome:
        """Execute one task; every failure is persisted as ``failed``."""
        tasks = TaskStore(self.store, project.project_id)
        LOGGER.info(
            "Task implementation started",
            extra={"project_id": project.project_id, "task_id": task.task_id},
        )
        try:
            implementation = self._generate(project, task)
            changed = self._apply(implementation)
            completed = tasks.save(task.with_status("completed"))
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or exc.__class__.__name__
            LOGGER.warning(
                "Task implementation failed",
                extra={"project_id": project.project_id, "task_id": task.task_id, "error": error},
            )
            try:
                tasks.save(task.with_status("failed", error=error))
            except PipelineError as persist_exc:
                LOGGER.error(
                    "Could not persist failed task state",
                    extra={"task_id": task.task_id, "error": str(persist_exc)},
                )
            return TaskOutcome(
                task_id=task.task_id,
                title=task.title,
                success=False,
                status="failed",
                error=error,
            )
        AgentMemory(self.store, project.project_id).record_learning(completed, implementation)
        LOGGER.info(
            "Task implementation completed",
            extra={
                "project_id": project.project_id,
                "task_id": task.task_id,
                "file_count": changed,
            },
        )
        return TaskOutcome(
            task_id=task.task_id,
            title=task.title,
            success=True,
            status="completed",
            message=implementation.message,
            files_changed=changed,
        )

    def _generate(self, project: Project, task: Task) -> TaskImplementation:
        snapshot = self.store.snapshot()
        named = [item for item in snapshot if item.path in task.files]
        context = select_context_files(
            "\n".join(task.files),
            [*named, *snapshot],
            max_files=self.max_context_files,
            max_chars_per_file=self.max_chars_per_file,
        )
        raw = self.provider.generate_text(
            IMPLEMENTATION_SYSTEM_PROMPT,
            build_implementation_prompt(
                task, project, context, self._recent_learnings(project.project_id)
            ),
        )
        implementation = parse_implementation(raw)
        for change in implementation.files:
            if self.store.is_reserved(change.path):
                raise ProposalParseError(f"implementation targets reserved path '{change.path}'")
        return implementation

    def _apply(self, implementation: TaskImplementation) -> int:
        changed = 0
        for change in implementation.files:
            if change.operation == "delete":
                if self.store.delete(change.path, implementation.commit_message):
                    changed += 1
                continue
            self.store.upsert(change.path, change.content, implementation.commit_message)
            changed += 1
        return changed

    def _recent_learnings(self, project_id: str, limit: int = 3) -> list[str]:
        learnings = AgentMemory(self.store, project_id).load().get("learnings")
        if not isinstance(learnings, dict):
            return []
        summaries: list[str] = []
        for entry in list(learnings.values())[-limit:]:
            if isinstance(entry, dict):
                summaries.append(f"{entry.get('task', '?')}: {entry.get('implementation', '')}")
        return summaries

