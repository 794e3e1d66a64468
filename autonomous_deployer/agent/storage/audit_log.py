"""Hash-chained deployment audit trail stored as one versioned file."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from autonomous_deployer.agent.errors import PipelineError
from autonomous_deployer.agent.models import (
    LOG_STATUS_STARTING,
    DeploymentLogEntry,
    new_identifier,
    utc_now_iso,
)
from autonomous_deployer.agent.security import redact_sensitive_text
from autonomous_deployer.agent.settings import DEPLOYMENT_LOG_FILE
from autonomous_deployer.agent.storage.versioned_store import VersionedFileStore
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()

STATUS_UNKNOWN = "unknown"

_COMMIT_MESSAGES = {
    "starting": "Start deployment",
    "success": "Log deployment success",
    "failed": "Log deployment error",
    "fixing": "Log auto-fix attempt",
    "retry_failed": "Log failed retry",
}


@dataclass(frozen=True)
class AuditTrail:
    """Ordered log entries for one project with derived status."""

    entries: tuple[DeploymentLogEntry, ...]
    chain_valid: bool
    status: str


def _clean_text(value: str | None) -> str | None:
    """Redact and trim text the way persisted entries are read back."""
    if value is None:
        return None
    return redact_sensitive_text(value).strip() or None


def entry_digest(payload: dict[str, Any]) -> str:
    """Return the sha256 digest of a canonical JSON payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def seal_entry(entry: DeploymentLogEntry, previous_hash: str | None) -> DeploymentLogEntry:
    """Link entry to its predecessor and compute its own hash."""
    linked = entry.with_hashes(previous_hash, "")
    return linked.with_hashes(previous_hash, entry_digest(linked.unsealed_dict()))


def verify_chain(entries: list[DeploymentLogEntry] | tuple[DeploymentLogEntry, ...]) -> bool:
    """Return whether every entry hash and predecessor link is intact."""
    previous_hash: str | None = None
    for entry in entries:
        if entry.entry_hash is None:
            return False
        if entry.previous_hash != previous_hash:
            return False
        if entry_digest(entry.unsealed_dict()) != entry.entry_hash:
            return False
        previous_hash = entry.entry_hash
    return True


def deployment_status(entries: list[DeploymentLogEntry] | tuple[DeploymentLogEntry, ...]) -> str:
    """Return the outcome of the latest attempt or ``unknown``.

    Entries are taken in stored order. An attempt whose last entry is not a
    terminal status (for example after a caller-side timeout) is unknown,
    never success.
    """
    if not entries:
        return STATUS_UNKNOWN
    last = entries[-1]
    return last.status if last.is_terminal else STATUS_UNKNOWN


def parse_log(content: str | None) -> list[DeploymentLogEntry]:
    """Parse the persisted log array."""
    if content is None or not content.strip():
        return []
    raw = json.loads(content)
    if not isinstance(raw, list):
        raise ValueError("Deployment log must contain a JSON array.")
    entries: list[DeploymentLogEntry] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Deployment log entry {index} is not an object.")
        entries.append(DeploymentLogEntry.from_dict(item))
    return entries


class DeploymentAuditLog:
    """Appends pipeline transitions for one deployment attempt.

    Each append is a conflict-retried read-modify-write of the log file. An
    append that still fails is reported through the return value and the
    logger; it never raises into the pipeline.
    """

    def __init__(
        self,
        store: VersionedFileStore,
        *,
        project_id: str,
        platform: str,
        attempt_id: str | None = None,
    ) -> None:
        """Bind the log to one project attempt."""
        self.store = store
        self.project_id = project_id
        self.platform = platform
        self.attempt_id = attempt_id or new_identifier("attempt")
        self.path = store.state_path(DEPLOYMENT_LOG_FILE)
        self.failures = 0

    def record(
        self,
        status: str,
        message: str,
        *,
        deployment_url: str | None = None,
        deployment_id: str | None = None,
        error: str | None = None,
        original_error: str | None = None,
        files_fixed: int | None = None,
    ) -> bool:
        """Append one entry; return False when the store rejected it."""
        entry = DeploymentLogEntry(
            project_id=self.project_id,
            platform=self.platform,
            status=status,
            message=_clean_text(message) or status,
            timestamp=utc_now_iso(),
            attempt_id=self.attempt_id,
            deployment_url=_clean_text(deployment_url),
            deployment_id=_clean_text(deployment_id),
            error=_clean_text(error),
            original_error=_clean_text(original_error),
            files_fixed=files_fixed,
        )

        def _append(current: str | None) -> str:
            existing = parse_log(current)
            previous_hash = existing[-1].entry_hash if existing else None
            sealed = seal_entry(entry, previous_hash)
            payload = [item.to_dict() for item in [*existing, sealed]]
            return json.dumps(payload, indent=2) + "\n"

        try:
            self.store.read_modify_write(
                self.path,
                _append,
                _COMMIT_MESSAGES.get(status, "Log deployment event"),
            )
        except (PipelineError, ValueError) as exc:
            self.failures += 1
            LOGGER.error(
                "Audit log append failed",
                extra={
                    "project_id": self.project_id,
                    "status": status,
                    "attempt_id": self.attempt_id,
                    "error": str(exc),
                },
            )
            return False
        LOGGER.info(
            "Audit entry appended",
            extra={"project_id": self.project_id, "status": status, "attempt_id": self.attempt_id},
        )
        return True

    def start(self, message: str = "Starting deployment process...") -> bool:
        """Record the opening entry of an attempt."""
        return self.record(LOG_STATUS_STARTING, message)


def load_audit_trail(store: VersionedFileStore) -> AuditTrail:
    """Read the full audit trail of a project repository."""
    store.invalidate(store.state_path(DEPLOYMENT_LOG_FILE))
    current = store.read_optional(store.state_path(DEPLOYMENT_LOG_FILE))
    entries = tuple(parse_log(current.content if current is not None else None))
    return AuditTrail(
        entries=entries,
        chain_valid=verify_chain(entries),
        status=deployment_status(entries),
    )
