"""Versioned repository storage, audit trail and reserved state files."""

from __future__ import annotations

from autonomous_deployer.agent.storage.audit_log import (
    AuditTrail,
    DeploymentAuditLog,
    load_audit_trail,
    verify_chain,
)
from autonomous_deployer.agent.storage.github_contents import (
    ContentsBackend,
    GitHubContentsClient,
    RemoteFile,
    RepoEntry,
)
from autonomous_deployer.agent.storage.state_files import (
    AgentMemory,
    TaskStore,
    write_project_metadata,
)
from autonomous_deployer.agent.storage.versioned_store import VersionedFile, VersionedFileStore

__all__ = [
    "AgentMemory",
    "AuditTrail",
    "ContentsBackend",
    "DeploymentAuditLog",
    "GitHubContentsClient",
    "RemoteFile",
    "RepoEntry",
    "TaskStore",
    "VersionedFile",
    "VersionedFileStore",
    "load_audit_trail",
    "verify_chain",
    "write_project_metadata",
]
