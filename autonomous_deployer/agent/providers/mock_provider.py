"""Offline provider that replays queued responses."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any


class MockProvider:
    """A deterministic provider for tests and offline runs.

    Queued items may be raw strings, JSON-serializable dicts, or exceptions
    that are raised in place of a response.
    """

    def __init__(self, responses: Iterable[str | dict[str, Any] | Exception]) -> None:
        """Initialize mock provider with queued responses."""
        self._responses = list(responses)
        self.prompts: list[tuple[str, str]] = []

    @property
    def remaining(self) -> int:
        """Number of responses not consumed yet."""
        return len(self._responses)

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """Return next queued response and record prompts."""
        self.prompts.append((system_prompt, user_prompt))
        if not self._responses:
            raise RuntimeError("MockProvider has no remaining responses.")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            return json.dumps(item)
        return item
