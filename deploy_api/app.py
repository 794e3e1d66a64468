"""FastAPI application exposing deploy, fix, task and log endpoints."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, TypeVar

from fastapi import Depends, FastAPI, Header, HTTPException, Query

from autonomous_deployer.agent.errors import (
    CredentialsMissing,
    NotFoundError,
    PipelineError,
    ProposalParseError,
    Unauthorized,
)
from autonomous_deployer.agent.models import Credentials, Project
from autonomous_deployer.agent.orchestrator import DeploymentPipeline
from autonomous_deployer.agent.records import (
    JsonRecordStore,
    require_owned_project,
    require_session,
)
from autonomous_deployer.agent.settings import PipelineSettings
from autonomous_deployer.logging_utils import get_logger
from deploy_api.models import (
    DeployRequest,
    DeployResponse,
    FixRequest,
    FixResponse,
    LogsResponse,
    TaskAction,
    TaskRequest,
    TaskResponse,
)

LOGGER = get_logger()

ResponseT = TypeVar("ResponseT")


class BackendState:
    """Holds the records store and the lazily built pipeline."""

    def __init__(
        self,
        records: JsonRecordStore | None = None,
        pipeline: DeploymentPipeline | None = None,
        settings: PipelineSettings | None = None,
    ) -> None:
        self.records = records or JsonRecordStore()
        self.settings = settings or PipelineSettings.from_env()
        self._pipeline = pipeline

    @property
    def pipeline(self) -> DeploymentPipeline:
        if self._pipeline is None:
            self._pipeline = DeploymentPipeline.from_settings(self.settings, self.records)
        return self._pipeline

    def resolve(self, token: str | None, project_id: str) -> tuple[Project, Credentials]:
        """Authenticate the session and load the caller's project and credentials."""
        try:
            user_id = require_session(self.records, token)
        except Unauthorized as exc:
            raise HTTPException(status_code=401, detail="Unauthorized") from exc
        try:
            project = require_owned_project(self.records, user_id, project_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="Project not found") from exc
        return project, self.records.get_credentials(user_id)


def _bearer_token(authorization: Annotated[str | None, Header()] = None) -> str | None:
    if authorization is None:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


SessionToken = Annotated[str | None, Depends(_bearer_token)]


def _guarded(action: Callable[[], ResponseT], failure: Callable[[str], ResponseT]) -> ResponseT:
    """Run action, turning pipeline errors into failure bodies and bad input into 400."""
    try:
        return action()
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CredentialsMissing as exc:
        return failure(str(exc))
    except (PipelineError, ProposalParseError) as exc:
        LOGGER.warning("Request failed", extra={"error": str(exc)})
        return failure(str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(
    records: JsonRecordStore | None = None,
    pipeline: DeploymentPipeline | None = None,
    settings: PipelineSettings | None = None,
) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(title="Autonomous Deployer API")
    state = BackendState(records=records, pipeline=pipeline, settings=settings)

    @app.post("/api/deploy", response_model=DeployResponse, response_model_exclude_none=True)
    def deploy(payload: DeployRequest, token: SessionToken) -> DeployResponse:
        project, credentials = state.resolve(token, payload.project_id)

        def _run() -> DeployResponse:
            outcome = state.pipeline.deploy(project, credentials, payload.platform)
            return DeployResponse(
                success=outcome.success,
                status=outcome.status,
                message=outcome.message,
                deployment_url=outcome.deployment_url,
                deployment_id=outcome.deployment_id,
                error=outcome.error,
                original_error=outcome.original_error,
                retry_error=outcome.retry_error,
                auto_fixed=outcome.auto_fixed,
                solution=outcome.solution,
                attempt_id=outcome.attempt_id,
            )

        return _guarded(
            _run,
            lambda error: DeployResponse(
                success=False, status="failed", message="Deployment failed", error=error
            ),
        )

    @app.post("/api/deploy/fix", response_model=FixResponse, response_model_exclude_none=True)
    def fix(payload: FixRequest, token: SessionToken) -> FixResponse:
        project, credentials = state.resolve(token, payload.project_id)

        def _run() -> FixResponse:
            outcome = state.pipeline.fix(project, credentials, payload.error, payload.platform)
            return FixResponse(
                success=outcome.success,
                solution=outcome.solution,
                files_fixed=outcome.files_fixed if outcome.success else None,
                error=outcome.error,
            )

        return _guarded(_run, lambda error: FixResponse(success=False, error=error))

    @app.post("/api/tasks", response_model=TaskResponse, response_model_exclude_none=True)
    def tasks(payload: TaskRequest, token: SessionToken) -> TaskResponse:
        project, credentials = state.resolve(token, payload.project_id)

        def _run() -> TaskResponse:
            engine = state.pipeline.task_engine(project, credentials)
            if payload.action is TaskAction.generate:
                generated = engine.generate_tasks(project, payload.context)
                return TaskResponse(success=True, tasks=[task.to_dict() for task in generated])
            if payload.action is TaskAction.implement:
                if not payload.task_id:
                    raise ValueError("Task ID required")
                outcome = engine.implement(project, payload.task_id)
                return TaskResponse(
                    success=outcome.success, results=[outcome.to_dict()], error=outcome.error
                )
            outcomes = engine.implement_all(project)
            return TaskResponse(
                success=all(outcome.success for outcome in outcomes),
                results=[outcome.to_dict() for outcome in outcomes],
            )

        return _guarded(_run, lambda error: TaskResponse(success=False, error=error))

    @app.get("/api/deploy/logs", response_model=LogsResponse)
    def logs(
        token: SessionToken,
        project_id: Annotated[str, Query(alias="projectId", min_length=1)],
    ) -> LogsResponse:
        project, credentials = state.resolve(token, project_id)
        try:
            trail = state.pipeline.history(project, credentials)
        except (PipelineError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return LogsResponse(
            status=trail.status,
            chain_valid=trail.chain_valid,
            entries=[entry.to_dict() for entry in trail.entries],
        )

    return app
