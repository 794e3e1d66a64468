"""Logging configuration helpers for the deployment pipeline."""

from __future__ import annotations

import logging
from pathlib import Path

from autonomous_deployer.agent.security import redact_sensitive_text

_LOGGER_NAME = "autodeploy"


def _close_handlers(logger: logging.Logger) -> None:
    """Detach and close all handlers currently bound to the logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def configure_logging(*, log_file: Path, verbose: bool) -> logging.Logger:
    """Configure file logging for the CLI and return the pipeline logger.

    Logging is reconfigured on every CLI invocation and the target file is
    truncated so each deploy or task run has an isolated log history.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    _close_handlers(logger)

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False
    log_path = log_file.expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(_ExtraFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    return logger


def get_logger() -> logging.Logger:
    """Return the pipeline logger (configured or with null handler)."""
    logger = logging.getLogger(_LOGGER_NAME)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger


_STANDARD_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys() | {"message", "asctime"}
)


def record_extras(record: logging.LogRecord) -> dict[str, object]:
    """Return the ``extra={...}`` fields attached to a log record."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
    }


class _ExtraFormatter(logging.Formatter):
    """Append structured ``extra`` fields and mask secrets in the whole line."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = record_extras(record)
        if extras:
            rendered = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
            base = f"{base} [{rendered}]"
        return redact_sensitive_text(base)
