"""Generative remediation of failed deployments."""

from __future__ import annotations

import json
import re
from typing import Any

from autonomous_deployer.agent.errors import ProposalParseError
from autonomous_deployer.agent.models import FixProposal, Project, ProjectFile
from autonomous_deployer.agent.prompts import FIX_SYSTEM_PROMPT, build_fix_prompt
from autonomous_deployer.agent.providers.base import LLMProvider
from autonomous_deployer.logging_utils import get_logger

LOGGER = get_logger()

CONFIG_FILES = (
    "package.json",
    "vercel.json",
    "netlify.toml",
    "next.config.js",
    "next.config.mjs",
    "vite.config.ts",
    "vite.config.js",
    "tsconfig.json",
    "wrangler.toml",
)

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def strip_code_fences(raw_text: str) -> str:
    """Remove one wrapping markdown fence, if present."""
    cleaned = raw_text.strip()
    match = _FENCE_PATTERN.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Return the first balanced ``{...}`` span that decodes to a JSON object.

    The scan tracks string literals and escapes so braces inside strings do
    not end a span early. Raises ProposalParseError when no span decodes.
    """
    text = strip_code_fences(raw_text)
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            break
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    raise ProposalParseError("no valid structure found")


def _balanced_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def select_context_files(
    failure_text: str,
    snapshot: list[ProjectFile],
    *,
    max_files: int,
    max_chars_per_file: int,
) -> list[ProjectFile]:
    """Pick a bounded, truncated subset of the snapshot for a fix prompt."""
    mentioned = [item for item in snapshot if item.path in failure_text]
    config = sorted(
        (item for item in snapshot if item.path in CONFIG_FILES and item not in mentioned),
        key=lambda item: CONFIG_FILES.index(item.path),
    )
    chosen: list[ProjectFile] = []
    for item in [*mentioned, *config, *snapshot]:
        if len(chosen) >= max_files:
            break
        if any(existing.path == item.path for existing in chosen):
            continue
        chosen.append(ProjectFile(path=item.path, content=item.content[:max_chars_per_file]))
    return chosen


def parse_fix_proposal(raw_text: str, *, namespace: str = ".prodev") -> FixProposal:
    """Strictly parse model output into a validated FixProposal."""
    payload = extract_json_object(raw_text)
    try:
        proposal = FixProposal.from_dict(payload)
    except ValueError as exc:
        raise ProposalParseError(f"invalid fix proposal: {exc}") from exc
    reserved = namespace.strip("/")
    for item in proposal.files:
        if item.path == reserved or item.path.startswith(f"{reserved}/"):
            raise ProposalParseError(f"fix proposal targets reserved path '{item.path}'")
    return proposal


class RemediationEngine:
    """Turns a failure description into a structured fix proposal."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        max_files: int = 10,
        max_chars_per_file: int = 2_000,
        namespace: str = ".prodev",
    ) -> None:
        """Initialize the engine with a generation provider and context bounds."""
        self.provider = provider
        self.max_files = max_files
        self.max_chars_per_file = max_chars_per_file
        self.namespace = namespace

    def propose_fix(
        self,
        failure_text: str,
        project: Project,
        snapshot: list[ProjectFile],
    ) -> FixProposal:
        """Return a fix proposal; never raises.

        Any generation, parsing or validation failure yields a proposal with
        ``can_fix=False`` whose description names the cause.
        """
        try:
            context = select_context_files(
                failure_text,
                snapshot,
                max_files=self.max_files,
                max_chars_per_file=self.max_chars_per_file,
            )
            raw = self.provider.generate_text(
                FIX_SYSTEM_PROMPT,
                build_fix_prompt(failure_text, project, context),
            )
            proposal = parse_fix_proposal(raw, namespace=self.namespace)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Remediation failed",
                extra={"project_id": project.project_id, "error": str(exc)},
            )
            return FixProposal.unavailable(f"auto-fix failed: {exc}")
        LOGGER.info(
            "Remediation proposal received",
            extra={
                "project_id": project.project_id,
                "can_fix": proposal.can_fix,
                "file_count": len(proposal.files),
            },
        )
        return proposal
