"""Tests for the OpenAI and mock generation providers."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import httpx
import pytest
from openai import APIConnectionError, APIStatusError

from autonomous_deployer.agent.providers.mock_provider import MockProvider
from autonomous_deployer.agent.providers.openai_provider import OpenAIProvider


class _Endpoint:
    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _fake_client(responses_result: Any, chat_result: Any = None) -> SimpleNamespace:
    return SimpleNamespace(
        responses=_Endpoint(responses_result),
        chat=SimpleNamespace(completions=_Endpoint(chat_result)),
    )


def _status_error(status: int) -> APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(status, request=request)
    return APIStatusError("unsupported", response=response, body=None)


def test_responses_api_output_text_is_returned() -> None:
    client = _fake_client(SimpleNamespace(output_text='{"canFix": false}'))
    provider = OpenAIProvider("key", client=client)  # type: ignore[arg-type]

    assert provider.generate_text("sys", "usr") == '{"canFix": false}'
    call = client.responses.calls[0]
    assert call["model"] == "gpt-4.1-mini"
    assert call["input"][0]["content"][0]["text"] == "sys"


def test_output_segments_are_joined_when_output_text_missing() -> None:
    response = SimpleNamespace(
        output_text=None,
        output=[SimpleNamespace(content=[SimpleNamespace(text="part one"), {"text": "two"}])],
    )
    provider = OpenAIProvider("key", client=_fake_client(response))  # type: ignore[arg-type]

    assert provider.generate_text("sys", "usr") == "part one\ntwo"


def test_falls_back_to_chat_completions_on_api_error() -> None:
    chat = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="{}"))])
    client = _fake_client(_status_error(400), chat)
    provider = OpenAIProvider("key", client=client)  # type: ignore[arg-type]

    assert provider.generate_text("sys", "usr") == "{}"
    assert client.chat.completions.calls[0]["response_format"] == {"type": "json_object"}


def test_connection_errors_are_not_masked_by_fallback() -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    client = _fake_client(APIConnectionError(request=request))
    provider = OpenAIProvider("key", client=client)  # type: ignore[arg-type]

    with pytest.raises(APIConnectionError):
        provider.generate_text("sys", "usr")
    assert client.chat.completions.calls == []


def test_api_key_is_required_without_client() -> None:
    with pytest.raises(ValueError):
        OpenAIProvider("")


def test_mock_provider_replays_and_records_prompts() -> None:
    provider = MockProvider([{"a": 1}, "raw", ValueError("bad")])

    assert provider.generate_text("s1", "u1") == '{"a": 1}'
    assert provider.generate_text("s2", "u2") == "raw"
    with pytest.raises(ValueError):
        provider.generate_text("s3", "u3")
    with pytest.raises(RuntimeError):
        provider.generate_text("s4", "u4")
    assert [prompt for _system, prompt in provider.prompts] == ["u1", "u2", "u3", "u4"]
    assert provider.remaining == 0
