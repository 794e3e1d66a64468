"""Tests for fix-proposal parsing and the remediation engine."""

from __future__ import annotations

import json

import pytest

from autonomous_deployer.agent.errors import ProposalParseError
from autonomous_deployer.agent.models import Project, ProjectFile
from autonomous_deployer.agent.providers.mock_provider import MockProvider
from autonomous_deployer.agent.remediation import (
    RemediationEngine,
    extract_json_object,
    parse_fix_proposal,
    select_context_files,
    strip_code_fences,
)

VALID = {
    "canFix": True,
    "description": "Add the missing build script",
    "files": [{"path": "package.json", "content": "{}", "operation": "update"}],
    "commitMessage": "Add build script",
}


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_extract_json_object_skips_prose_and_braces_in_strings() -> None:
    raw = 'Here is the fix: {"description": "use } carefully", "canFix": false} thanks'

    assert extract_json_object(raw) == {"description": "use } carefully", "canFix": False}


def test_extract_json_object_skips_non_json_spans() -> None:
    raw = "Braces {like this} first, then {\"canFix\": false}"

    assert extract_json_object(raw) == {"canFix": False}


@pytest.mark.parametrize("raw", ["", "no json at all", "[1, 2, 3]", "{broken"])
def test_extract_json_object_rejects_unstructured_output(raw: str) -> None:
    with pytest.raises(ProposalParseError, match="no valid structure found"):
        extract_json_object(raw)


def test_parse_fix_proposal_accepts_valid_output() -> None:
    proposal = parse_fix_proposal(f"```json\n{json.dumps(VALID)}\n```")

    assert proposal.is_actionable
    assert proposal.files[0].path == "package.json"
    assert proposal.commit_message == "Add build script"


def test_can_fix_without_files_is_not_actionable() -> None:
    proposal = parse_fix_proposal(json.dumps({**VALID, "files": []}))

    assert proposal.can_fix is False
    assert proposal.is_actionable is False


@pytest.mark.parametrize(
    "files",
    [
        [{"path": "../etc/passwd", "content": "x"}],
        [{"path": "/abs/path", "content": "x"}],
        [{"path": "a.txt", "content": 3}],
        [{"path": "a.txt", "content": "x", "operation": "delete"}],
        "not-a-list",
    ],
)
def test_invalid_file_operations_are_rejected(files: object) -> None:
    with pytest.raises(ProposalParseError):
        parse_fix_proposal(json.dumps({**VALID, "files": files}))


def test_can_fix_must_be_boolean() -> None:
    with pytest.raises(ProposalParseError):
        parse_fix_proposal(json.dumps({**VALID, "canFix": "yes"}))


def test_reserved_namespace_writes_are_rejected() -> None:
    payload = {**VALID, "files": [{"path": ".prodev/tasks.json", "content": "[]"}]}

    with pytest.raises(ProposalParseError, match="reserved path"):
        parse_fix_proposal(json.dumps(payload))


def test_context_prefers_mentioned_then_config_files() -> None:
    snapshot = [
        ProjectFile(path="README.md", content="readme"),
        ProjectFile(path="src/index.js", content="x" * 50),
        ProjectFile(path="package.json", content="{}"),
    ]

    chosen = select_context_files(
        "Error in src/index.js line 3", snapshot, max_files=2, max_chars_per_file=10
    )

    assert [item.path for item in chosen] == ["src/index.js", "package.json"]
    assert chosen[0].content == "x" * 10


def test_engine_returns_unavailable_proposal_on_provider_failure(project: Project) -> None:
    engine = RemediationEngine(MockProvider([RuntimeError("quota exceeded")]))

    proposal = engine.propose_fix("build failed", project, [])

    assert proposal.can_fix is False
    assert "quota exceeded" in proposal.description


def test_engine_returns_unavailable_proposal_on_unparseable_output(project: Project) -> None:
    engine = RemediationEngine(MockProvider(["I cannot help with that."]))

    proposal = engine.propose_fix("build failed", project, [])

    assert proposal.is_actionable is False
    assert "no valid structure found" in proposal.description


def test_engine_sends_failure_and_files_to_provider(project: Project) -> None:
    provider = MockProvider([VALID])
    engine = RemediationEngine(provider)

    proposal = engine.propose_fix(
        "Missing script: build", project, [ProjectFile(path="package.json", content="{}")]
    )

    assert proposal.is_actionable
    _system, user_prompt = provider.prompts[0]
    assert "Missing script: build" in user_prompt
    assert "package.json" in user_prompt
