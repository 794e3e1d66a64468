"""Pydantic request and response models for the deployment API."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model exchanging camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskAction(str, Enum):
    """Supported task endpoint actions."""

    implement = "implement"
    implement_all = "implement_all"
    generate = "generate"


class DeployRequest(ApiModel):
    """Request payload for a deployment."""

    project_id: str = Field(..., min_length=1)
    platform: str = "vercel"


class DeployResponse(ApiModel):
    """Deployment outcome as returned to the console."""

    success: bool
    status: str
    message: str | None = None
    deployment_url: str | None = None
    deployment_id: str | None = None
    error: str | None = None
    original_error: str | None = None
    retry_error: str | None = None
    auto_fixed: bool = False
    solution: str | None = None
    attempt_id: str | None = None


class FixRequest(ApiModel):
    """Request payload for a standalone fix."""

    project_id: str = Field(..., min_length=1)
    error: str = Field(..., min_length=1)
    platform: str | None = None


class FixResponse(ApiModel):
    """Outcome of a standalone fix."""

    success: bool
    solution: str | None = None
    files_fixed: int | None = None
    error: str | None = None


class TaskRequest(ApiModel):
    """Request payload for task implementation or generation."""

    project_id: str = Field(..., min_length=1)
    action: TaskAction
    task_id: str | None = None
    context: str | None = None


class TaskResponse(ApiModel):
    """Outcome of a task request."""

    success: bool
    results: list[dict[str, Any]] | None = None
    tasks: list[dict[str, Any]] | None = None
    error: str | None = None


class LogsResponse(ApiModel):
    """Audit trail of a project."""

    status: str
    chain_valid: bool
    entries: list[dict[str, Any]]
