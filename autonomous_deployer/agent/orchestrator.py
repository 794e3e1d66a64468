"""Deployment pipeline: deploy, verify, remediate once, retry once."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace

import httpx

from autonomous_deployer.agent.deploy import (
    DeployConfig,
    DeployedSite,
    PlatformAdapter,
    ReachabilityChecker,
    default_platform_adapters,
    project_slug,
    require_adapter,
    resolve_build_settings,
)
from autonomous_deployer.agent.errors import (
    CredentialsMissing,
    PipelineError,
    PlatformAPIError,
    RemediationUnavailable,
    RetryExhausted,
    StoreError,
)
from autonomous_deployer.agent.models import (
    LOG_STATUS_FAILED,
    LOG_STATUS_FIXING,
    LOG_STATUS_RETRY_FAILED,
    LOG_STATUS_SUCCESS,
    Credentials,
    FixProposal,
    Platform,
    Project,
    ProjectFile,
    utc_now_iso,
)
from autonomous_deployer.agent.providers import OpenAIProvider, ResilientLLM
from autonomous_deployer.agent.providers.base import LLMProvider
from autonomous_deployer.agent.records import ProjectRepository
from autonomous_deployer.agent.remediation import RemediationEngine
from autonomous_deployer.agent.settings import PipelineSettings
from autonomous_deployer.agent.storage import (
    AuditTrail,
    DeploymentAuditLog,
    GitHubContentsClient,
    VersionedFileStore,
    load_audit_trail,
    write_project_metadata,
)
from autonomous_deployer.agent.tasks import TaskExecutionEngine
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()

StoreFactory = Callable[[Credentials, Project], VersionedFileStore]
ProviderFactory = Callable[[Credentials], LLMProvider]

ERROR_KIND_VERIFICATION = "verification_failed"
ERROR_KIND_REMEDIATION = "remediation_unavailable"
ERROR_KIND_RETRY = "retry_exhausted"

_AUTO_FIX_SUCCESS = "Deployment successful after auto-fix"


@dataclass(frozen=True)
class DeploymentOutcome:
    """Caller-visible result of one deploy request."""

    success: bool
    status: str
    platform: str
    message: str
    deployment_url: str | None = None
    deployment_id: str | None = None
    error: str | None = None
    original_error: str | None = None
    retry_error: str | None = None
    auto_fixed: bool = False
    files_fixed: int = 0
    solution: str | None = None
    error_kind: str | None = None
    attempt_id: str | None = None
    audit_failures: int = 0


@dataclass(frozen=True)
class FixOutcome:
    """Result of a standalone remediation request."""

    success: bool
    solution: str | None = None
    files_fixed: int = 0
    error: str | None = None


def default_store_factory(
    settings: PipelineSettings,
    client: httpx.Client | None = None,
) -> StoreFactory:
    """Return a factory that opens the project repository with the user's token."""

    def _factory(credentials: Credentials, project: Project) -> VersionedFileStore:
        owner, repo = project.repository_ref()
        backend = GitHubContentsClient(
            credentials.require_github_token(),
            api_url=settings.github_api_url,
            client=client,
            timeout_seconds=settings.http_timeout_seconds,
        )
        return VersionedFileStore(
            backend,
            owner,
            repo,
            namespace=settings.namespace,
            cache=settings.cache_reads,
            max_conflict_retries=settings.max_conflict_retries,
        )

    return _factory


def default_provider_factory(settings: PipelineSettings) -> ProviderFactory:
    """Return a factory building the resilient OpenAI provider for a user."""

    def _factory(credentials: Credentials) -> LLMProvider:
        primary = OpenAIProvider(
            credentials.require_generation_key(),
            model=settings.generation_model,
        )
        return ResilientLLM(primary, max_retries=settings.generation_max_retries)

    return _factory


class DeploymentPipeline:
    """Runs the deploy state machine for one request at a time.

    Project, credentials and platform are passed explicitly into every call;
    the pipeline holds only its collaborators.
    """

    def __init__(
        self,
        *,
        projects: ProjectRepository,
        adapters: dict[Platform, PlatformAdapter],
        store_factory: StoreFactory,
        provider_factory: ProviderFactory,
        verifier: ReachabilityChecker,
        settings: PipelineSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize pipeline with injectable collaborators."""
        self.projects = projects
        self.adapters = adapters
        self.store_factory = store_factory
        self.provider_factory = provider_factory
        self.verifier = verifier
        self.settings = settings or PipelineSettings()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        projects: ProjectRepository,
        *,
        client: httpx.Client | None = None,
    ) -> DeploymentPipeline:
        """Build the production pipeline over one shared HTTP client."""
        http = client or httpx.Client(timeout=settings.http_timeout_seconds)
        return cls(
            projects=projects,
            adapters=default_platform_adapters(http),
            store_factory=default_store_factory(settings, http),
            provider_factory=default_provider_factory(settings),
            verifier=ReachabilityChecker(http, timeout_seconds=settings.verify_timeout_seconds),
            settings=settings,
        )

    def deploy(
        self,
        project: Project,
        credentials: Credentials,
        platform: Platform | str,
    ) -> DeploymentOutcome:
        """Deploy a project, remediating and retrying at most once on failure.

        Missing credentials and unsupported platforms raise before any log
        entry is written. Every later transition is mirrored in the audit log.
        """
        resolved = Platform.parse(platform)
        adapter = require_adapter(self.adapters, resolved)
        config = self._deploy_config(project, credentials, resolved)
        credentials.require_github_token()
        store = self.store_factory(credentials, project)
        audit = DeploymentAuditLog(store, project_id=project.project_id, platform=resolved.value)
        LOGGER.info(
            "Deploy requested",
            extra={
                "project_id": project.project_id,
                "platform": resolved.value,
                "attempt_id": audit.attempt_id,
            },
        )

        audit.start()
        files = self._snapshot_or_fail(store, audit)
        try:
            site = adapter.deploy(config, files)
        except PlatformAPIError as exc:
            original_error = str(exc)
            audit.record(
                LOG_STATUS_FAILED,
                f"Deployment failed: {original_error}",
                error=original_error,
            )
            return self._remediate_and_retry(
                project, credentials, store, audit, adapter, config, original_error
            )

        verification = self.verifier.check(site.url)
        if verification.reachable:
            return self._succeed(project, resolved, store, audit, site, auto_fixed=False)

        failure = str(verification.as_error())
        audit.record(
            LOG_STATUS_FAILED,
            "Deployment completed but site not accessible",
            deployment_url=site.url,
            deployment_id=site.deployment_id,
            error=failure,
        )
        if not self.settings.remediate_unreachable:
            LOGGER.warning(
                "Deployment not reachable",
                extra={"project_id": project.project_id, "platform": resolved.value},
            )
            return DeploymentOutcome(
                success=False,
                status="failed",
                platform=resolved.value,
                message="Deployment completed but verification failed",
                deployment_url=site.url,
                deployment_id=site.deployment_id,
                error=failure,
                original_error=failure,
                error_kind=ERROR_KIND_VERIFICATION,
                attempt_id=audit.attempt_id,
                audit_failures=audit.failures,
            )
        return self._remediate_and_retry(
            project, credentials, store, audit, adapter, config, failure
        )

    def fix(
        self,
        project: Project,
        credentials: Credentials,
        error_text: str,
        platform: Platform | str | None = None,
    ) -> FixOutcome:
        """Generate and apply a fix for a reported error without redeploying."""
        resolved = Platform.parse(platform) if platform else None
        if not error_text.strip():
            raise ValueError("Error text is required to generate a fix.")
        credentials.require_generation_key()
        credentials.require_github_token()
        store = self.store_factory(credentials, project)
        engine = self._remediation_engine(credentials)
        if resolved is not None:
            project = _with_platform(project, resolved)
        proposal = engine.propose_fix(error_text, project, store.snapshot())
        if not proposal.is_actionable:
            unavailable = RemediationUnavailable(proposal.description)
            return FixOutcome(success=False, solution=proposal.description, error=str(unavailable))
        written, write_error = self._apply_fix(store, proposal, error_text)
        audit = DeploymentAuditLog(
            store,
            project_id=project.project_id,
            platform=resolved.value if resolved is not None else "unknown",
        )
        if write_error is not None:
            if written:
                audit.record(
                    LOG_STATUS_FIXING,
                    f"AI-generated deployment fix partially applied: {proposal.description}",
                    error=str(write_error),
                    original_error=error_text,
                    files_fixed=written,
                )
            return FixOutcome(
                success=False,
                solution=proposal.description,
                files_fixed=written,
                error=str(write_error),
            )
        audit.record(
            LOG_STATUS_FIXING,
            f"AI-generated deployment fix applied: {proposal.description}",
            error=error_text,
            files_fixed=written,
        )
        return FixOutcome(success=True, solution=proposal.description, files_fixed=written)

    def history(self, project: Project, credentials: Credentials) -> AuditTrail:
        """Return the ordered audit trail of a project."""
        credentials.require_github_token()
        return load_audit_trail(self.store_factory(credentials, project))

    def task_engine(self, project: Project, credentials: Credentials) -> TaskExecutionEngine:
        """Build a task engine bound to the project repository."""
        credentials.require_generation_key()
        credentials.require_github_token()
        return TaskExecutionEngine(
            self.store_factory(credentials, project),
            self.provider_factory(credentials),
            max_context_files=self.settings.max_context_files,
            max_chars_per_file=self.settings.max_chars_per_file,
        )

    def _deploy_config(
        self,
        project: Project,
        credentials: Credentials,
        platform: Platform,
    ) -> DeployConfig:
        token = credentials.token_for(platform)
        if platform is Platform.cloudflare and not credentials.cloudflare_account_id:
            raise CredentialsMissing("cloudflare")
        build_command, output_directory = resolve_build_settings(project.framework)
        return DeployConfig(
            token=token,
            project_name=project_slug(project.name),
            framework=project.framework,
            build_command=build_command,
            output_directory=output_directory,
            team_id=credentials.vercel_team_id if platform is Platform.vercel else None,
            account_id=(
                credentials.cloudflare_account_id if platform is Platform.cloudflare else None
            ),
        )

    def _snapshot_or_fail(
        self,
        store: VersionedFileStore,
        audit: DeploymentAuditLog,
    ) -> list[ProjectFile]:
        try:
            return store.snapshot()
        except StoreError as exc:
            audit.record(
                LOG_STATUS_FAILED,
                f"Could not read project files: {exc}",
                error=str(exc),
            )
            raise

    def _remediation_engine(self, credentials: Credentials) -> RemediationEngine:
        return RemediationEngine(
            self.provider_factory(credentials),
            max_files=self.settings.max_context_files,
            max_chars_per_file=self.settings.max_chars_per_file,
            namespace=self.settings.namespace,
        )

    def _propose(
        self,
        project: Project,
        credentials: Credentials,
        store: VersionedFileStore,
        failure_text: str,
    ) -> FixProposal:
        """Run remediation against a fresh snapshot; never raises."""
        try:
            engine = self._remediation_engine(credentials)
            store.invalidate()
            snapshot = store.snapshot()
        except (PipelineError, ValueError) as exc:
            return FixProposal.unavailable(f"auto-fix failed: {exc}")
        return engine.propose_fix(failure_text, project, snapshot)

    def _apply_fix(
        self, store: VersionedFileStore, proposal: FixProposal, error_text: str
    ) -> tuple[int, StoreError | None]:
        """Commit proposed files in order; stop at the first rejected write.

        Returns the number of files committed and the write error, if any.
        Files committed before the error stay in the repository.
        """
        message = proposal.commit_message or f"Fix deployment error: {error_text[:50]}"
        written = 0
        for operation in proposal.files:
            try:
                store.upsert(operation.path, operation.content, message)
            except StoreError as exc:
                return written, exc
            written += 1
        return written, None

    def _remediate_and_retry(
        self,
        project: Project,
        credentials: Credentials,
        store: VersionedFileStore,
        audit: DeploymentAuditLog,
        adapter: PlatformAdapter,
        config: DeployConfig,
        original_error: str,
    ) -> DeploymentOutcome:
        platform = adapter.platform
        proposal = self._propose(project, credentials, store, original_error)
        if not proposal.is_actionable:
            LOGGER.warning(
                "No automatic fix available",
                extra={"project_id": project.project_id, "platform": platform.value},
            )
            return DeploymentOutcome(
                success=False,
                status="failed",
                platform=platform.value,
                message="Deployment failed",
                error=original_error,
                original_error=original_error,
                solution=proposal.description,
                error_kind=ERROR_KIND_REMEDIATION,
                attempt_id=audit.attempt_id,
                audit_failures=audit.failures,
            )

        files_fixed, write_error = self._apply_fix(store, proposal, original_error)
        if write_error is not None:
            audit.record(
                LOG_STATUS_FIXING,
                f"Auto-fix partially applied: {proposal.description}",
                error=str(write_error),
                files_fixed=files_fixed,
            )
            return self._exhaust(
                project, audit, platform, original_error, str(write_error), proposal
            )
        audit.record(
            LOG_STATUS_FIXING,
            f"Auto-fix applied: {proposal.description}",
            files_fixed=files_fixed,
        )
        try:
            self._sleep(self.settings.settle_seconds)
            store.invalidate()
            files = store.snapshot()
            site = adapter.deploy(config, files)
        except PipelineError as exc:
            return self._exhaust(project, audit, platform, original_error, str(exc), proposal)

        LOGGER.info(
            "Retry after auto-fix succeeded",
            extra={"project_id": project.project_id, "platform": platform.value},
        )
        return self._succeed(
            project,
            platform,
            store,
            audit,
            site,
            auto_fixed=True,
            original_error=original_error,
            files_fixed=files_fixed,
            solution=proposal.description,
        )

    def _exhaust(
        self,
        project: Project,
        audit: DeploymentAuditLog,
        platform: Platform,
        original_error: str,
        retry_error: str,
        proposal: FixProposal,
    ) -> DeploymentOutcome:
        exhausted = RetryExhausted(original_error, retry_error)
        audit.record(
            LOG_STATUS_RETRY_FAILED,
            "Deployment failed after auto-fix",
            error=retry_error,
            original_error=original_error,
        )
        LOGGER.error(
            "Retry after auto-fix failed",
            extra={"project_id": project.project_id, "platform": platform.value},
        )
        return DeploymentOutcome(
            success=False,
            status="failed",
            platform=platform.value,
            message="Deployment failed after auto-fix",
            error=str(exhausted),
            original_error=original_error,
            retry_error=retry_error,
            solution=proposal.description,
            error_kind=ERROR_KIND_RETRY,
            attempt_id=audit.attempt_id,
            audit_failures=audit.failures,
        )

    def _succeed(
        self,
        project: Project,
        platform: Platform,
        store: VersionedFileStore,
        audit: DeploymentAuditLog,
        site: DeployedSite,
        *,
        auto_fixed: bool,
        original_error: str | None = None,
        files_fixed: int = 0,
        solution: str | None = None,
    ) -> DeploymentOutcome:
        deployed_at = utc_now_iso()
        updated = _with_platform(project, platform)
        try:
            updated = self.projects.update_project(
                project.project_id,
                deployment_url=site.url,
                deployment_platform=platform.value,
                last_deployment=deployed_at,
            )
        except (PipelineError, OSError, ValueError) as exc:
            LOGGER.error(
                "Project record update failed",
                extra={"project_id": project.project_id, "error": str(exc)},
            )
        write_project_metadata(store, updated)
        audit.record(
            LOG_STATUS_SUCCESS,
            _AUTO_FIX_SUCCESS if auto_fixed else "Deployment completed successfully",
            deployment_url=site.url,
            deployment_id=site.deployment_id,
            original_error=original_error,
        )
        LOGGER.info(
            "Deploy succeeded",
            extra={
                "project_id": project.project_id,
                "platform": platform.value,
                "attempt_id": audit.attempt_id,
            },
        )
        return DeploymentOutcome(
            success=True,
            status="success",
            platform=platform.value,
            message=_AUTO_FIX_SUCCESS if auto_fixed else "Deployment successful",
            deployment_url=site.url,
            deployment_id=site.deployment_id,
            original_error=original_error,
            auto_fixed=auto_fixed,
            files_fixed=files_fixed,
            solution=solution,
            attempt_id=audit.attempt_id,
            audit_failures=audit.failures,
        )


def _with_platform(project: Project, platform: Platform) -> Project:
    return replace(project, deployment_platform=platform.value)
