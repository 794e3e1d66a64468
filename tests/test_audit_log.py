"""Tests for the hash-chained deployment audit log."""

from __future__ import annotations

import json

from autonomous_deployer.agent.storage.audit_log import (
    DeploymentAuditLog,
    load_audit_trail,
    parse_log,
    verify_chain,
)
from autonomous_deployer.agent.storage.versioned_store import VersionedFileStore
from conftest import InMemoryContents

LOG_PATH = ".prodev/deployment-logs.json"


def _audit(store: VersionedFileStore) -> DeploymentAuditLog:
    return DeploymentAuditLog(store, project_id="proj_1", platform="vercel")


def test_entries_are_appended_in_order_and_chained(store: VersionedFileStore) -> None:
    audit = _audit(store)
    audit.start()
    audit.record("failed", "Deployment failed: boom", error="boom")
    audit.record("success", "Deployment completed successfully", deployment_url="https://x")

    trail = load_audit_trail(store)

    assert [entry.status for entry in trail.entries] == ["starting", "failed", "success"]
    assert trail.chain_valid is True
    assert trail.status == "success"
    assert trail.entries[0].previous_hash is None
    assert trail.entries[1].previous_hash == trail.entries[0].entry_hash
    assert {entry.attempt_id for entry in trail.entries} == {audit.attempt_id}


def test_tampering_breaks_the_chain(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    audit = _audit(store)
    audit.start()
    audit.record("success", "Deployment completed successfully")
    raw = json.loads(contents.content(LOG_PATH))
    raw[0]["message"] = "rewritten"
    contents.external_edit(LOG_PATH, json.dumps(raw))

    trail = load_audit_trail(store)

    assert trail.chain_valid is False
    assert verify_chain(parse_log(contents.content(LOG_PATH))) is False


def test_status_is_unknown_without_terminal_entry(store: VersionedFileStore) -> None:
    assert load_audit_trail(store).status == "unknown"

    audit = _audit(store)
    audit.start()
    audit.record("fixing", "Auto-fix applied", files_fixed=1)

    assert load_audit_trail(store).status == "unknown"


def test_status_follows_latest_attempt(store: VersionedFileStore) -> None:
    first = _audit(store)
    first.start()
    first.record("success", "Deployment completed successfully")
    second = _audit(store)
    second.start()
    second.record("retry_failed", "Deployment failed after auto-fix")

    assert load_audit_trail(store).status == "retry_failed"


def test_concurrent_writer_does_not_lose_entries(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    ours = _audit(store)
    ours.start()
    other = _audit(VersionedFileStore(contents, "acme", "shop"))
    other.start()

    ours.record("success", "Deployment completed successfully")

    trail = load_audit_trail(store)
    assert len(trail.entries) == 3
    assert trail.chain_valid is True


def test_failed_append_is_reported_not_raised(
    store: VersionedFileStore, contents: InMemoryContents
) -> None:
    contents.failing_paths.add(LOG_PATH)
    audit = _audit(store)

    assert audit.start() is False
    assert audit.failures == 1
    assert LOG_PATH not in contents.files


def test_secrets_are_redacted_from_entries(store: VersionedFileStore) -> None:
    audit = _audit(store)
    audit.record(
        "failed",
        "Deployment failed",
        error="request with api_key=supersecretvalue123 rejected",
    )

    entry = load_audit_trail(store).entries[0]
    assert entry.error is not None
    assert "supersecretvalue123" not in entry.error
    assert "[REDACTED:value]" in entry.error


def test_legacy_entries_without_hashes_fail_verification() -> None:
    legacy = json.dumps(
        [
            {
                "projectId": "proj_1",
                "platform": "vercel",
                "status": "success",
                "message": "ok",
                "timestamp": "2024-01-01T00:00:00+00:00",
            }
        ]
    )

    entries = parse_log(legacy)

    assert entries[0].attempt_id == "legacy"
    assert verify_chain(entries) is False


def test_platform_text_with_surrounding_whitespace_keeps_chain_valid(
    store: VersionedFileStore,
) -> None:
    audit = _audit(store)
    audit.start()
    audit.record(
        "failed",
        "Deployment failed: Build failed: missing script 'build'\n",
        error="Build failed: missing script 'build'\n",
    )
    audit.record("retry_failed", "  Deployment failed after auto-fix  ", original_error="\n")

    trail = load_audit_trail(store)

    assert trail.chain_valid is True
    assert trail.entries[1].error == "Build failed: missing script 'build'"
    assert trail.entries[2].message == "Deployment failed after auto-fix"
    assert trail.entries[2].original_error is None
