"""Tests for CLI logging configuration behavior."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from autonomous_deployer.__main__ import JsonLogFormatter
from autonomous_deployer.logging_utils import configure_logging, get_logger


def test_configure_logging_overwrites_previous_run_log(tmp_path: Path) -> None:
    """Each configure call should start a fresh log file for the new run."""
    log_path = tmp_path / "autodeploy.log"

    first_logger = configure_logging(log_file=log_path, verbose=False)
    first_logger.info("from first run")

    second_logger = configure_logging(log_file=log_path, verbose=False)
    second_logger.info("from second run")

    content = log_path.read_text(encoding="utf-8")

    assert "from second run" in content
    assert "from first run" not in content


def test_extra_fields_are_appended_to_log_lines(tmp_path: Path) -> None:
    log_path = tmp_path / "autodeploy.log"
    logger = configure_logging(log_file=log_path, verbose=True)

    logger.info("Deploy requested", extra={"project_id": "proj_1", "platform": "vercel"})
    logger.debug("debug detail")

    content = log_path.read_text(encoding="utf-8")
    assert "Deploy requested [platform=vercel project_id=proj_1]" in content
    assert "debug detail" in content


def test_file_log_masks_secrets_in_messages_and_extras(tmp_path: Path) -> None:
    log_path = tmp_path / "autodeploy.log"
    logger = configure_logging(log_file=log_path, verbose=False)

    logger.error(
        "Push with ghp_abcdefghijklmnopqrstuvwxyz12 failed",
        extra={"error": "401 api_key=sk-live-value"},
    )

    content = log_path.read_text(encoding="utf-8")
    assert "ghp_abcdefghijklmnopqrstuvwxyz12" not in content
    assert "sk-live-value" not in content
    assert "[REDACTED:github_token]" in content


def test_get_logger_returns_pipeline_logger() -> None:
    assert get_logger().name == "autodeploy"


def test_json_formatter_keeps_pipeline_fields() -> None:
    record = logging.LogRecord("autodeploy", logging.INFO, __file__, 1, "Audit entry", None, None)
    record.project_id = "proj_1"
    record.status = "success"

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["message"] == "Audit entry"
    assert payload["project_id"] == "proj_1"
    assert payload["status"] == "success"
    assert "platform" not in payload


def test_json_formatter_redacts_secrets_in_extras() -> None:
    record = logging.LogRecord(
        "autodeploy", logging.ERROR, __file__, 1, "Deploy failed", None, None
    )
    record.error = "401 for token=abc123secret"

    payload = json.loads(JsonLogFormatter().format(record))

    assert "abc123secret" not in payload["error"]
