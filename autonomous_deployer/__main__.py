"""Run the CLI with JSON log lines: ``python -m autonomous_deployer``."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from autonomous_deployer.agent.security import redact_sensitive_text
from autonomous_deployer.cli import app
from autonomous_deployer.logging_utils import record_extras


class JsonLogFormatter(logging.Formatter):
    """Render a record and its structured extras as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_sensitive_text(record.getMessage()),
        }
        for key, value in record_extras(record).items():
            payload[key] = redact_sensitive_text(value) if isinstance(value, str) else value
        if record.exc_info:
            payload["exception"] = redact_sensitive_text(self.formatException(record.exc_info))
        return json.dumps(payload, default=str)


def _install_json_handler() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root.addHandler(handler)
    root.setLevel(logging.INFO)


if __name__ == "__main__":
    _install_json_handler()
    app()
