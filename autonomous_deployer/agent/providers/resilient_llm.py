"""Generation wrapper that retries transient provider failures."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from openai import APIConnectionError, APIStatusError

from autonomous_deployer.agent.providers.base import LLMProvider

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


def is_transient_error(error: Exception) -> bool:
    """Return whether a provider error is worth retrying.

    Connection problems, timeouts, rate limits and server-side failures are
    transient. Authentication and request errors fail the same way on every
    attempt.
    """
    if isinstance(error, APIConnectionError):
        return True
    if isinstance(error, APIStatusError):
        return error.status_code in RETRYABLE_STATUS_CODES or error.status_code >= 500
    return False


def retry_after_seconds(error: Exception) -> float | None:
    """Read a ``Retry-After`` header (seconds or HTTP date) from a provider error."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return max(0.0, (moment - datetime.now(tz=UTC)).total_seconds())


class ResilientLLM:
    """Retry the primary provider on transient errors, then try a fallback.

    Non-transient errors skip the remaining attempts. The fallback, when
    configured, is used after the primary gives up; otherwise the last
    primary error propagates to the caller.
    """

    def __init__(
        self,
        primary: LLMProvider,
        fallback: LLMProvider | None = None,
        *,
        max_retries: int = 3,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Validate retry limits and bind providers."""
        if max_retries <= 0:
            raise ValueError("max_retries must be greater than zero.")
        if base_delay_seconds <= 0 or max_delay_seconds <= 0:
            raise ValueError("retry delay values must be positive.")
        self.primary = primary
        self.fallback = fallback
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self._sleep = sleep

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """Generate text from the primary provider, retrying transient failures."""
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return self.primary.generate_text(system_prompt, user_prompt)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if not is_transient_error(exc) or attempt >= self.max_retries:
                    break
                delay = self._delay(attempt, exc)
                logger.warning(
                    "Generation failed (attempt %s/%s), retrying in %.2fs: %s",
                    attempt,
                    self.max_retries,
                    delay,
                    exc,
                )
                self._sleep(delay)

        if last_error is None:
            raise RuntimeError("Generation did not run.")
        if self.fallback is None:
            raise last_error
        logger.warning("Using fallback provider after: %s", last_error)
        return self.fallback.generate_text(system_prompt, user_prompt)

    def _delay(self, attempt: int, error: Exception) -> float:
        backoff = self.base_delay_seconds * (2 ** (attempt - 1))
        requested = retry_after_seconds(error)
        if requested is not None:
            backoff = max(backoff, requested)
        return min(backoff, self.max_delay_seconds)
