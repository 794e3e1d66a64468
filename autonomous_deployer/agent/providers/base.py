"""Provider abstraction for text-generation calls."""

from __future__ import annotations

from typing import Protocol


class LLMProvider(Protocol):
    """Black-box "complete this prompt" interface used by remediation and tasks."""

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """Return raw model output for a prompt pair."""
        ...
