"""Tests for the JSON records store and request guards."""

from __future__ import annotations

from pathlib import Path

import pytest

from autonomous_deployer.agent.errors import NotFoundError, Unauthorized
from autonomous_deployer.agent.models import Project
from autonomous_deployer.agent.records import (
    JsonRecordStore,
    require_owned_project,
    require_session,
)


def test_missing_file_reads_as_empty(tmp_path: Path) -> None:
    records = JsonRecordStore(tmp_path / "records.json")

    assert records.get_project("proj_1") is None
    assert records.list_projects() == []
    assert records.get_credentials("user_1").github_token is None
    assert records.resolve_session("anything") is None


def test_projects_credentials_and_sessions_persist(tmp_path: Path, project: Project) -> None:
    path = tmp_path / "nested" / "records.json"
    records = JsonRecordStore(path)
    records.save_project(project)
    records.save_credentials({"user_id": "user_1", "github_token": "gh", "vercel_token": "v"})
    records.add_session("sess_1", "user_1")

    reopened = JsonRecordStore(path)

    assert reopened.get_project("proj_1") == project
    assert reopened.list_projects("user_1") == [project]
    assert reopened.list_projects("someone_else") == []
    assert reopened.get_credentials("user_1").vercel_token == "v"
    assert reopened.resolve_session("sess_1") == "user_1"
    assert not path.with_suffix(".json.tmp").exists()


def test_update_project_applies_deployment_fields(tmp_path: Path, project: Project) -> None:
    records = JsonRecordStore(tmp_path / "records.json")
    records.save_project(project)

    updated = records.update_project(
        "proj_1", deployment_url="https://x.app", deployment_platform="netlify"
    )

    assert updated.deployment_url == "https://x.app"
    assert records.get_project("proj_1") == updated


def test_update_project_rejects_unknown_fields_and_projects(
    tmp_path: Path, project: Project
) -> None:
    records = JsonRecordStore(tmp_path / "records.json")
    records.save_project(project)

    with pytest.raises(ValueError, match="user_id"):
        records.update_project("proj_1", user_id="attacker")
    with pytest.raises(NotFoundError):
        records.update_project("proj_missing", progress=10)


def test_non_object_records_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(ValueError):
        JsonRecordStore(path).get_project("proj_1")


def test_require_owned_project_hides_foreign_projects(tmp_path: Path, project: Project) -> None:
    records = JsonRecordStore(tmp_path / "records.json")
    records.save_project(project)

    assert require_owned_project(records, "user_1", "proj_1") == project
    with pytest.raises(NotFoundError, match="Project not found"):
        require_owned_project(records, "user_2", "proj_1")
    with pytest.raises(NotFoundError):
        require_owned_project(records, "user_1", "proj_2")


def test_require_session(tmp_path: Path) -> None:
    records = JsonRecordStore(tmp_path / "records.json")
    records.add_session("sess_1", "user_1")

    assert require_session(records, "sess_1") == "user_1"
    with pytest.raises(Unauthorized):
        require_session(records, None)
    with pytest.raises(Unauthorized):
        require_session(records, "sess_unknown")
