"""Runtime configuration for the deployment pipeline."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from autonomous_deployer.agent.config_validation import (
    require_non_negative_float,
    require_positive_float,
    require_positive_int,
    validate_namespace,
)

AUTODEPLOY_ENV_PREFIX = "AUTODEPLOY_"
AUTODEPLOY_RECORDS_ENV = "AUTODEPLOY_RECORDS_PATH"
DEFAULT_GENERATION_MODEL = "gpt-4.1-mini"

DEPLOYMENT_LOG_FILE = "deployment-logs.json"
TASKS_FILE = "tasks.json"
AGENT_MEMORY_FILE = "agent-memory.json"
PROJECT_METADATA_FILE = "project.json"


@dataclass(frozen=True)
class PipelineSettings:
    """Tunable limits and endpoints for deploy, remediation and task runs."""

    namespace: str = ".prodev"
    settle_seconds: float = 3.0
    max_context_files: int = 10
    max_chars_per_file: int = 2_000
    http_timeout_seconds: float = 30.0
    verify_timeout_seconds: float = 10.0
    max_conflict_retries: int = 3
    remediate_unreachable: bool = False
    cache_reads: bool = True
    generation_model: str = DEFAULT_GENERATION_MODEL
    generation_max_retries: int = 3
    github_api_url: str = "https://api.github.com"

    def __post_init__(self) -> None:
        """Validate configuration values eagerly."""
        object.__setattr__(self, "namespace", validate_namespace(self.namespace))
        require_non_negative_float(self.settle_seconds, "settle_seconds")
        require_positive_int(self.max_context_files, "max_context_files")
        require_positive_int(self.max_chars_per_file, "max_chars_per_file")
        require_positive_float(self.http_timeout_seconds, "http_timeout_seconds")
        require_positive_float(self.verify_timeout_seconds, "verify_timeout_seconds")
        require_positive_int(self.max_conflict_retries, "max_conflict_retries")
        require_positive_int(self.generation_max_retries, "generation_max_retries")
        if not self.generation_model.strip():
            raise ValueError("generation_model cannot be blank.")
        if not self.github_api_url.startswith(("https://", "http://")):
            raise ValueError("github_api_url must be an http(s) URL.")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PipelineSettings:
        """Build settings from ``AUTODEPLOY_*`` environment variables."""
        env = os.environ if environ is None else environ

        def _get(name: str) -> str | None:
            value = env.get(f"{AUTODEPLOY_ENV_PREFIX}{name}")
            if value is None or not value.strip():
                return None
            return value.strip()

        defaults = cls()
        return cls(
            namespace=_get("NAMESPACE") or defaults.namespace,
            settle_seconds=_parse_float(_get("SETTLE_SECONDS"), defaults.settle_seconds),
            max_context_files=_parse_int(_get("MAX_CONTEXT_FILES"), defaults.max_context_files),
            max_chars_per_file=_parse_int(
                _get("MAX_CHARS_PER_FILE"), defaults.max_chars_per_file
            ),
            http_timeout_seconds=_parse_float(
                _get("HTTP_TIMEOUT_SECONDS"), defaults.http_timeout_seconds
            ),
            verify_timeout_seconds=_parse_float(
                _get("VERIFY_TIMEOUT_SECONDS"), defaults.verify_timeout_seconds
            ),
            max_conflict_retries=_parse_int(
                _get("MAX_CONFLICT_RETRIES"), defaults.max_conflict_retries
            ),
            remediate_unreachable=_parse_bool(
                _get("REMEDIATE_UNREACHABLE"), defaults.remediate_unreachable
            ),
            cache_reads=_parse_bool(_get("CACHE_READS"), defaults.cache_reads),
            generation_model=_get("GENERATION_MODEL") or defaults.generation_model,
            generation_max_retries=_parse_int(
                _get("GENERATION_MAX_RETRIES"), defaults.generation_max_retries
            ),
            github_api_url=_get("GITHUB_API_URL") or defaults.github_api_url,
        )


def default_records_path() -> Path:
    """Resolve the records file from env or the home directory."""
    env_value = os.environ.get(AUTODEPLOY_RECORDS_ENV)
    if env_value:
        return Path(env_value)
    return Path.home() / ".autodeploy" / "records.json"


def _parse_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Expected an integer, got '{raw}'.") from exc


def _parse_float(raw: str | None, default: float) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Expected a number, got '{raw}'.") from exc


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Expected a boolean flag, got '{raw}'.")
