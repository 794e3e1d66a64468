"""Prompt templates used by remediation and task execution."""

from __future__ import annotations

from autonomous_deployer.agent.models import Project, ProjectFile, Task

FIX_SYSTEM_PROMPT = """
You are a senior deployment engineer repairing a failed web deployment.
Return STRICT JSON only: one object, no prose, no markdown, no code fences.
Your output schema:
{
  "canFix": true,
  "description": "one sentence describing the root cause and the fix",
  "files": [
    {
      "path": "relative/path/in/repository",
      "content": "full new file content",
      "operation": "create|update"
    }
  ],
  "commitMessage": "short commit message"
}
Rules:
- Return the complete content of every file you change, never a diff.
- Only touch files needed to resolve the reported error.
- Paths are relative to the repository root and never start with "/" or contain "..".
- Never write into the .prodev directory.
- If the error cannot be fixed by changing project files, return
  {"canFix": false, "description": "why no fix is possible", "files": [], "commitMessage": ""}.
- Never include secrets, tokens, or environment variable values.
""".strip()

IMPLEMENTATION_SYSTEM_PROMPT = """
You are an expert software engineer implementing one development task in an
existing repository.
Return STRICT JSON only: one object, no prose, no markdown, no code fences.
Your output schema:
{
  "files": [
    {
      "path": "relative/path/in/repository",
      "content": "full file content (empty for delete)",
      "operation": "create|update|delete"
    }
  ],
  "message": "summary of what was implemented",
  "commitMessage": "short commit message"
}
Rules:
- Return complete file contents for create and update operations.
- Paths are relative to the repository root and never start with "/" or contain "..".
- Never write into the .prodev directory.
- Follow the conventions of the existing files shown in the context.
""".strip()

TASK_GENERATION_SYSTEM_PROMPT = """
You are an expert software architect planning development work for a project.
Return STRICT JSON only: one object, no prose, no markdown, no code fences.
Your output schema:
{
  "tasks": [
    {
      "title": "specific, actionable task title",
      "description": "technical requirements and context",
      "priority": "high|medium|low",
      "estimatedTime": "X hours",
      "dependencies": ["title of a task this depends on"],
      "files": ["relative/file/paths"],
      "operations": ["create", "update", "delete"],
      "context": "how this task relates to the user's goals"
    }
  ]
}
Rules:
- Generate 8-12 tasks that build on the existing codebase without duplicating work.
- Order tasks so dependencies come first.
""".strip()


def _render_files(files: list[ProjectFile]) -> str:
    if not files:
        return "(no files available)"
    return "\n\n".join(f"--- {item.path} ---\n{item.content}" for item in files)


def build_fix_prompt(failure_text: str, project: Project, files: list[ProjectFile]) -> str:
    """Build the user prompt for one deployment failure."""
    return (
        "Fix the following deployment failure.\n\n"
        f"Deployment error:\n{failure_text}\n\n"
        "Project:\n"
        f"- Name: {project.name}\n"
        f"- Framework: {project.framework}\n"
        f"- Description: {project.description or 'n/a'}\n"
        f"- Platform: {project.deployment_platform or 'n/a'}\n\n"
        f"Relevant files:\n{_render_files(files)}\n"
    )


def build_implementation_prompt(
    task: Task,
    project: Project,
    files: list[ProjectFile],
    recent_learnings: list[str],
) -> str:
    """Build the user prompt for implementing one task."""
    learnings = "\n".join(f"- {item}" for item in recent_learnings) or "- none"
    return (
        f"Implement task '{task.title}'.\n\n"
        f"Task description:\n{task.description or task.title}\n\n"
        f"Files the task expects to touch: {', '.join(task.files) or 'unspecified'}\n"
        f"Operations: {', '.join(task.operations) or 'unspecified'}\n"
        f"Task context: {task.context or 'n/a'}\n\n"
        "Project:\n"
        f"- Name: {project.name}\n"
        f"- Framework: {project.framework}\n"
        f"- Description: {project.description or 'n/a'}\n\n"
        f"Recent implementations:\n{learnings}\n\n"
        f"Existing files:\n{_render_files(files)}\n"
    )


def build_task_generation_prompt(
    project: Project,
    existing: list[Task],
    file_paths: list[str],
    user_context: str | None,
) -> str:
    """Build the user prompt for bulk task generation."""
    completed = sum(1 for task in existing if task.status == "completed")
    listed = "\n".join(f"- {path}" for path in file_paths[:50]) or "- none"
    return (
        "Analyze this project and generate actionable development tasks.\n\n"
        f"- Description: {project.description or project.name}\n"
        f"- Framework: {project.framework}\n"
        f"- User context: {user_context or 'No specific context provided'}\n"
        f"- Existing tasks: {len(existing)} ({completed} completed)\n"
        f"- Progress: {project.progress}%\n\n"
        f"Existing files:\n{listed}\n"
    )
