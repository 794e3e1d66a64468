"""Tests for the retrying generation wrapper."""

from __future__ import annotations

import httpx
import pytest
from openai import APIConnectionError, APIStatusError, APITimeoutError

from autonomous_deployer.agent.providers.mock_provider import MockProvider
from autonomous_deployer.agent.providers.resilient_llm import (
    ResilientLLM,
    is_transient_error,
    retry_after_seconds,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")


def _status_error(status: int, headers: dict[str, str] | None = None) -> APIStatusError:
    response = httpx.Response(status, request=REQUEST, headers=headers)
    return APIStatusError(f"status {status}", response=response, body=None)


def test_fallback_is_used_after_transient_failures() -> None:
    sleeps: list[float] = []
    primary = MockProvider([APIConnectionError(request=REQUEST)] * 2)
    provider = ResilientLLM(
        primary=primary,
        fallback=MockProvider(['{"ok": true}']),
        max_retries=2,
        sleep=sleeps.append,
    )

    assert provider.generate_text("sys", "usr") == '{"ok": true}'
    assert len(primary.prompts) == 2
    assert sleeps == [0.5]


def test_recovers_after_transient_failures_with_capped_backoff() -> None:
    sleeps: list[float] = []
    provider = ResilientLLM(
        primary=MockProvider([_status_error(503), APITimeoutError(request=REQUEST), "ok"]),
        max_retries=3,
        base_delay_seconds=1.0,
        max_delay_seconds=1.5,
        sleep=sleeps.append,
    )

    assert provider.generate_text("sys", "usr") == "ok"
    assert sleeps == [1.0, 1.5]


def test_rate_limit_retry_after_header_is_honoured() -> None:
    sleeps: list[float] = []
    provider = ResilientLLM(
        primary=MockProvider([_status_error(429, {"retry-after": "4"}), "ok"]),
        sleep=sleeps.append,
    )

    assert provider.generate_text("sys", "usr") == "ok"
    assert sleeps == [4.0]


def test_non_transient_errors_are_not_retried() -> None:
    sleeps: list[float] = []
    primary = MockProvider([_status_error(401), "never"])
    provider = ResilientLLM(primary=primary, max_retries=3, sleep=sleeps.append)

    with pytest.raises(APIStatusError):
        provider.generate_text("sys", "usr")
    assert len(primary.prompts) == 1
    assert sleeps == []


def test_last_error_propagates_without_fallback() -> None:
    provider = ResilientLLM(
        primary=MockProvider([RuntimeError("boom")]), max_retries=1, sleep=lambda _s: None
    )

    with pytest.raises(RuntimeError, match="boom"):
        provider.generate_text("sys", "usr")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (APIConnectionError(request=REQUEST), True),
        (_status_error(429), True),
        (_status_error(502), True),
        (_status_error(400), False),
        (ValueError("bad json"), False),
    ],
)
def test_transient_error_classification(error: Exception, expected: bool) -> None:
    assert is_transient_error(error) is expected


def test_retry_after_accepts_http_dates_and_ignores_garbage() -> None:
    assert retry_after_seconds(_status_error(429, {"retry-after": "soon"})) is None
    assert retry_after_seconds(_status_error(429)) is None
    past = _status_error(429, {"retry-after": "Wed, 21 Oct 2015 07:28:00 GMT"})
    assert retry_after_seconds(past) == 0.0


def test_invalid_limits_are_rejected() -> None:
    with pytest.raises(ValueError):
        ResilientLLM(primary=MockProvider([]), max_retries=0)
    with pytest.raises(ValueError):
        ResilientLLM(primary=MockProvider([]), base_delay_seconds=0)
