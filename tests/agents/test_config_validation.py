"""Tests for config validation helpers and pipeline settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from autonomous_deployer.agent.config_validation import (
    require_non_negative_float,
    require_positive_int,
    validate_namespace,
)
from autonomous_deployer.agent.settings import PipelineSettings, default_records_path


def test_validate_namespace_accepts_dotted_directory() -> None:
    """Namespace validator should normalize slashes."""
    assert validate_namespace("/.prodev/") == ".prodev"


@pytest.mark.parametrize("value", ["", "prodev", ".a/b", "../.prodev"])
def test_validate_namespace_rejects_unsafe_values(value: str) -> None:
    """Namespace validator should reject blank, undotted or nested names."""
    with pytest.raises(ValueError):
        validate_namespace(value)


def test_numeric_validators() -> None:
    assert require_positive_int(3, "x") == 3
    assert require_non_negative_float(0.0, "x") == 0.0
    with pytest.raises(ValueError):
        require_positive_int(0, "x")
    with pytest.raises(ValueError):
        require_non_negative_float(-1.0, "x")


def test_settings_defaults() -> None:
    settings = PipelineSettings()
    assert settings.namespace == ".prodev"
    assert settings.settle_seconds == 3.0
    assert settings.max_context_files == 10
    assert settings.max_chars_per_file == 2000
    assert settings.remediate_unreachable is False


def test_settings_from_env_reads_prefixed_variables() -> None:
    settings = PipelineSettings.from_env(
        {
            "AUTODEPLOY_SETTLE_SECONDS": "0",
            "AUTODEPLOY_MAX_CONTEXT_FILES": "4",
            "AUTODEPLOY_REMEDIATE_UNREACHABLE": "yes",
            "AUTODEPLOY_GENERATION_MODEL": "gpt-4.1",
            "UNRELATED": "ignored",
        }
    )
    assert settings.settle_seconds == 0.0
    assert settings.max_context_files == 4
    assert settings.remediate_unreachable is True
    assert settings.generation_model == "gpt-4.1"


@pytest.mark.parametrize(
    "environ",
    [
        {"AUTODEPLOY_MAX_CONTEXT_FILES": "many"},
        {"AUTODEPLOY_MAX_CONTEXT_FILES": "0"},
        {"AUTODEPLOY_REMEDIATE_UNREACHABLE": "maybe"},
        {"AUTODEPLOY_GITHUB_API_URL": "ftp://example.com"},
    ],
)
def test_settings_from_env_rejects_invalid_values(environ: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        PipelineSettings.from_env(environ)


def test_records_path_honours_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("AUTODEPLOY_RECORDS_PATH", str(tmp_path / "records.json"))
    assert default_records_path() == tmp_path / "records.json"
    monkeypatch.delenv("AUTODEPLOY_RECORDS_PATH")
    assert default_records_path().name == "records.json"
