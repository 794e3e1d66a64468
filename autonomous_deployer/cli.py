"""Command-line interface for the autonomous deployment pipeline."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from autonomous_deployer import __version__
from autonomous_deployer.agent.errors import (
    CredentialsMissing,
    NotFoundError,
    PipelineError,
    UnsupportedPlatform,
)
from autonomous_deployer.agent.models import Credentials, Platform, Project
from autonomous_deployer.agent.orchestrator import DeploymentPipeline, DeploymentOutcome
from autonomous_deployer.agent.providers.mock_provider import MockProvider
from autonomous_deployer.agent.records import JsonRecordStore
from autonomous_deployer.agent.settings import PipelineSettings
from autonomous_deployer.logging_utils import configure_logging
from deploy_api.app import create_app

app = typer.Typer(add_completion=False, no_args_is_help=True)
tasks_app = typer.Typer(no_args_is_help=True)
console = Console()

app.add_typer(tasks_app, name="tasks", help="Implement or generate development tasks.")

RecordsOption = Annotated[
    Path | None,
    typer.Option("--records-path", help="Records JSON file (projects, credentials, sessions)."),
]
LogFileOption = Annotated[
    Path | None,
    typer.Option("--log-file", help="Write a per-run log file to this path."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", help="Enable debug logging.")]
MockResponsesOption = Annotated[
    Path | None,
    typer.Option(
        "--mock-responses-file",
        help="Replay generation responses from a JSON list instead of calling OpenAI.",
    ),
]


def _cli_error(code: str, message: str, hint: str | None = None) -> typer.BadParameter:
    """Create a standardized CLI error with error code and optional remediation hint."""
    if hint is None:
        return typer.BadParameter(f"[{code}] {message}")
    return typer.BadParameter(f"[{code}] {message} Hint: {hint}")


def _load_mock_responses(mock_responses_file: Path) -> list[str | dict[str, Any]]:
    """Load and validate replayed generation responses."""
    raw = json.loads(mock_responses_file.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise typer.BadParameter("--mock-responses-file must contain a JSON list.")
    for index, item in enumerate(raw):
        if not isinstance(item, dict | str):
            raise typer.BadParameter(f"Mock response index {index} must be an object or string.")
    return raw


def _create_pipeline(
    settings: PipelineSettings,
    records: JsonRecordStore,
    mock_responses_file: Path | None,
) -> DeploymentPipeline:
    """Create the pipeline, optionally replacing generation with replayed responses."""
    pipeline = DeploymentPipeline.from_settings(settings, records)
    if mock_responses_file is not None:
        provider = MockProvider(_load_mock_responses(mock_responses_file))
        pipeline.provider_factory = lambda _credentials: provider
    return pipeline


def _prepare(
    project_id: str,
    records_path: Path | None,
    log_file: Path | None,
    verbose: bool,
) -> tuple[JsonRecordStore, Project, Credentials, PipelineSettings]:
    """Resolve settings, records, the project and its owner's credentials."""
    if log_file is not None:
        configure_logging(log_file=log_file, verbose=verbose)
    try:
        settings = PipelineSettings.from_env()
    except ValueError as exc:
        raise _cli_error("AUTODEPLOY-CONFIG", str(exc), "Check AUTODEPLOY_* variables.") from exc
    records = JsonRecordStore(records_path)
    project = records.get_project(project_id)
    if project is None:
        raise _cli_error("AUTODEPLOY-PROJECT", f"Project '{project_id}' not found.")
    return records, project, records.get_credentials(project.user_id), settings


def _run_guarded(
    action: Any,
    *,
    invalid_code: str = "AUTODEPLOY-INPUT",
    invalid_prefix: str = "",
) -> Any:
    """Run a pipeline call, mapping typed failures to CLI errors.

    Bad input (a malformed repository, an unusable project name, an
    unparseable state file) becomes ``invalid_code``.
    """
    try:
        return action()
    except CredentialsMissing as exc:
        raise _cli_error("AUTODEPLOY-CREDENTIALS", str(exc)) from exc
    except UnsupportedPlatform as exc:
        raise _cli_error("AUTODEPLOY-PLATFORM", str(exc)) from exc
    except NotFoundError as exc:
        raise _cli_error("AUTODEPLOY-NOT-FOUND", str(exc)) from exc
    except PipelineError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        raise _cli_error(invalid_code, f"{invalid_prefix}{exc}") from exc


def _print_outcome(outcome: DeploymentOutcome) -> None:
    table = Table(title="Deploy Result")
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("URL")
    table.add_column("Auto-fixed")
    table.add_column("Attempt")
    table.add_row(
        outcome.platform,
        "[green]success[/green]" if outcome.success else "[red]failed[/red]",
        outcome.deployment_url or "-",
        "yes" if outcome.auto_fixed else "no",
        outcome.attempt_id or "-",
    )
    console.print(table)
    console.print(outcome.message, markup=False)
    if outcome.solution:
        console.print(f"Remediation: {escape(outcome.solution)}")
    if outcome.original_error:
        console.print(f"[yellow]Original error:[/yellow] {escape(outcome.original_error)}")
    if outcome.retry_error:
        console.print(f"[red]Retry error:[/red] {escape(outcome.retry_error)}")
    if outcome.audit_failures:
        console.print(
            f"[yellow]{outcome.audit_failures} audit log entries could not be written.[/yellow]"
        )


@app.command()
def version() -> None:
    """Print the package version."""
    console.print(__version__)


@app.command()
def deploy(
    project: Annotated[str, typer.Option(help="Project ID.")],
    platform: Annotated[
        str,
        typer.Option(help="Hosting platform: vercel, netlify, or cloudflare."),
    ] = Platform.vercel.value,
    remediate_unreachable: Annotated[
        bool,
        typer.Option(
            "--remediate-unreachable/--no-remediate-unreachable",
            help="Also auto-fix deployments that fail the reachability check.",
        ),
    ] = False,
    records_path: RecordsOption = None,
    log_file: LogFileOption = None,
    verbose: VerboseOption = False,
    mock_responses_file: MockResponsesOption = None,
) -> None:
    """Deploy a project, auto-fixing and retrying once on failure.

    Examples:
        autodeploy deploy --project proj_123 --platform netlify
    """
    records, entry, credentials, settings = _prepare(project, records_path, log_file, verbose)
    if remediate_unreachable:
        settings = replace(settings, remediate_unreachable=True)
    pipeline = _create_pipeline(settings, records, mock_responses_file)
    outcome = _run_guarded(lambda: pipeline.deploy(entry, credentials, platform))
    _print_outcome(outcome)
    if not outcome.success:
        raise typer.Exit(code=1)


@app.command()
def fix(
    project: Annotated[str, typer.Option(help="Project ID.")],
    error: Annotated[str, typer.Option("--error", help="Deployment error text to fix.")],
    platform: Annotated[
        str | None,
        typer.Option(help="Platform the error came from."),
    ] = None,
    records_path: RecordsOption = None,
    log_file: LogFileOption = None,
    verbose: VerboseOption = False,
    mock_responses_file: MockResponsesOption = None,
) -> None:
    """Generate and commit a fix for a deployment error without redeploying."""
    records, entry, credentials, settings = _prepare(project, records_path, log_file, verbose)
    pipeline = _create_pipeline(settings, records, mock_responses_file)
    result = _run_guarded(
        lambda: pipeline.fix(entry, credentials, error, platform), invalid_code="AUTODEPLOY-FIX"
    )
    if result.success:
        solution = escape(result.solution or "")
        console.print(f"[green]Fixed {result.files_fixed} file(s):[/green] {solution}")
        return
    console.print(f"[red]No fix applied:[/red] {escape(result.error or '')}")
    raise typer.Exit(code=1)


@app.command()
def logs(
    project: Annotated[str, typer.Option(help="Project ID.")],
    records_path: RecordsOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print raw entries as JSON.")] = False,
) -> None:
    """Show the deployment audit trail of a project."""
    records, entry, credentials, settings = _prepare(project, records_path, None, False)
    pipeline = _create_pipeline(settings, records, None)
    trail = _run_guarded(
        lambda: pipeline.history(entry, credentials),
        invalid_code="AUTODEPLOY-LOGS",
        invalid_prefix="Deployment log is unreadable: ",
    )
    if as_json:
        console.print_json(
            json.dumps(
                {
                    "status": trail.status,
                    "chainValid": trail.chain_valid,
                    "entries": [item.to_dict() for item in trail.entries],
                }
            )
        )
        return
    if not trail.entries:
        console.print("No deployment log entries.")
        return
    table = Table(title=f"Deployment Log ({trail.status})")
    table.add_column("Timestamp")
    table.add_column("Attempt")
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("Message")
    for item in trail.entries:
        table.add_row(
            item.timestamp, item.attempt_id, item.platform, item.status, escape(item.message)
        )
    console.print(table)
    if not trail.chain_valid:
        console.print("[red]Audit chain verification failed: the log was modified.[/red]")
        raise typer.Exit(code=1)


def _print_task_outcomes(outcomes: list[Any]) -> None:
    table = Table(title="Task Results")
    table.add_column("Task")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Files")
    table.add_column("Detail")
    for outcome in outcomes:
        table.add_row(
            outcome.task_id,
            escape(outcome.title),
            "[green]completed[/green]" if outcome.success else "[red]failed[/red]",
            str(outcome.files_changed),
            escape(outcome.message or outcome.error or ""),
        )
    console.print(table)


@tasks_app.command("implement")
def tasks_implement(
    project: Annotated[str, typer.Option(help="Project ID.")],
    task_id: Annotated[str, typer.Option("--task-id", help="Task to implement.")],
    records_path: RecordsOption = None,
    log_file: LogFileOption = None,
    verbose: VerboseOption = False,
    mock_responses_file: MockResponsesOption = None,
) -> None:
    """Implement one task and commit its file changes."""
    records, entry, credentials, settings = _prepare(project, records_path, log_file, verbose)
    pipeline = _create_pipeline(settings, records, mock_responses_file)
    outcome = _run_guarded(
        lambda: pipeline.task_engine(entry, credentials).implement(entry, task_id)
    )
    _print_task_outcomes([outcome])
    if not outcome.success:
        raise typer.Exit(code=1)


@tasks_app.command("implement-all")
def tasks_implement_all(
    project: Annotated[str, typer.Option(help="Project ID.")],
    records_path: RecordsOption = None,
    log_file: LogFileOption = None,
    verbose: VerboseOption = False,
    mock_responses_file: MockResponsesOption = None,
) -> None:
    """Implement every pending task in order."""
    records, entry, credentials, settings = _prepare(project, records_path, log_file, verbose)
    pipeline = _create_pipeline(settings, records, mock_responses_file)
    outcomes = _run_guarded(lambda: pipeline.task_engine(entry, credentials).implement_all(entry))
    if not outcomes:
        console.print("No pending tasks.")
        return
    _print_task_outcomes(outcomes)
    if any(not outcome.success for outcome in outcomes):
        raise typer.Exit(code=1)


@tasks_app.command("generate")
def tasks_generate(
    project: Annotated[str, typer.Option(help="Project ID.")],
    context: Annotated[
        str | None,
        typer.Option("--context", help="What you want the new tasks to achieve."),
    ] = None,
    records_path: RecordsOption = None,
    log_file: LogFileOption = None,
    verbose: VerboseOption = False,
    mock_responses_file: MockResponsesOption = None,
) -> None:
    """Generate new pending tasks for a project."""
    records, entry, credentials, settings = _prepare(project, records_path, log_file, verbose)
    pipeline = _create_pipeline(settings, records, mock_responses_file)
    generated = _run_guarded(
        lambda: pipeline.task_engine(entry, credentials).generate_tasks(entry, context),
        invalid_code="AUTODEPLOY-TASKS",
        invalid_prefix="Task generation failed: ",
    )
    table = Table(title="Generated Tasks")
    table.add_column("Task")
    table.add_column("Title")
    table.add_column("Priority")
    table.add_column("Estimate")
    for task in generated:
        table.add_row(
            task.task_id, escape(task.title), task.priority, task.estimated_time or "-"
        )
    console.print(table)


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind host.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8000,
    records_path: RecordsOption = None,
) -> None:
    """Serve the deployment HTTP API."""
    if port <= 0:
        raise typer.BadParameter("port must be greater than zero.")
    uvicorn.run(create_app(records=JsonRecordStore(records_path)), host=host, port=port)


def main() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    main()
