"""OpenAI-backed text generation for remediation and task implementation."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai import APIConnectionError, APIError, APITimeoutError, OpenAI

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """LLM provider implementation using the OpenAI Python SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-mini",
        temperature: float = 0.1,
        max_output_tokens: int = 8_000,
        timeout_seconds: float = 120.0,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize provider with the user's API key and model settings."""
        if not api_key and client is None:
            raise ValueError("An API key is required for OpenAIProvider.")
        # Retries are owned by ResilientLLM.
        self.client = client or OpenAI(api_key=api_key, max_retries=0, timeout=timeout_seconds)
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """Generate raw text, preferring the Responses API."""
        try:
            return self._generate_with_responses_api(system_prompt, user_prompt)
        except (APIConnectionError, APITimeoutError):
            raise
        except APIError as exc:
            logger.info("Responses API failed (%s); falling back to chat completions.", exc)
            return self._generate_with_chat_completions_api(system_prompt, user_prompt)

    def _generate_with_responses_api(self, system_prompt: str, user_prompt: str) -> str:
        """Call Responses API and extract text output."""
        response = self.client.responses.create(
            model=self.model,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            input=[
                {
                    "role": "system",
                    "content": [{"type": "input_text", "text": system_prompt}],
                },
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": user_prompt}],
                },
            ],
        )  # type: ignore[call-overload]
        extracted = getattr(response, "output_text", None)
        if extracted:
            return str(extracted)
        return _extract_response_text(response)

    def _generate_with_chat_completions_api(self, system_prompt: str, user_prompt: str) -> str:
        """Call Chat Completions API fallback and extract text output."""
        response = self.client.chat.completions.create(
            model=self.model,
            temperature=self.temperature,
            max_completion_tokens=self.max_output_tokens,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
        )  # type: ignore[call-overload]
        message = response.choices[0].message.content
        if message is None:
            raise RuntimeError("Model returned empty message content.")
        return str(message)


def _extract_response_text(response: Any) -> str:
    """Extract text from SDK responses when output_text is unavailable."""
    parts: list[str] = []
    output = getattr(response, "output", None)
    if output is not None:
        for item in output:
            content = getattr(item, "content", None)
            if content is None and isinstance(item, dict):
                content = item.get("content")
            if not content:
                continue
            for segment in content:
                if isinstance(segment, dict):
                    maybe_text = segment.get("text")
                else:
                    maybe_text = getattr(segment, "text", None)
                if maybe_text:
                    parts.append(str(maybe_text))
    if parts:
        return "\n".join(parts)
    if hasattr(response, "model_dump"):
        return json.dumps(response.model_dump())
    return str(response)
