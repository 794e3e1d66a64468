"""Secret redaction helpers for audit entries and logged error text."""

from __future__ import annotations

import re
from typing import Final

POTENTIAL_SECRET_PATTERNS: tuple[tuple[str, str], ...] = (
    ("openai_api_key", r"sk-[A-Za-z0-9_-]{20,}"),
    ("github_token", r"gh[pousr]_[A-Za-z0-9]{20,}"),
    ("github_pat", r"github_pat_[A-Za-z0-9_]{20,}"),
    ("netlify_token", r"nfp_[A-Za-z0-9]{20,}"),
    ("jwt_token", r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
    ("bearer_token", r"(?i)bearer\s+[A-Za-z0-9._-]{16,}"),
)

SENSITIVE_KEY_PATTERN: Final[str] = (
    r"[A-Za-z0-9_.-]*(?:token|secret|api[_-]?key|password|passphrase|"
    r"private[_-]?key|access[_-]?key)[A-Za-z0-9_.-]*"
)

_SENSITIVE_INLINE_VALUE_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"(?i)(\b{SENSITIVE_KEY_PATTERN}\b)(\s*[:=]\s*)([^\s,;\"']+)"
)
_SENSITIVE_QUOTED_VALUE_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"(?i)(\b{SENSITIVE_KEY_PATTERN}\b[\"']?)(\s*[:=]\s*)(\"[^\"]*\"|'[^']*')"
)
_SENSITIVE_QUERY_PARAM_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"(?i)([?&]{SENSITIVE_KEY_PATTERN}=)[^&#\s]+"
)
_URL_CREDENTIALS_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)(https?://[^:\s/]+:)[^@\s/]+@")


def redact_sensitive_text(text: str) -> str:
    """Replace secret-like values with redaction placeholders."""
    redacted = text
    for label, pattern in POTENTIAL_SECRET_PATTERNS:
        redacted = re.sub(pattern, f"[REDACTED:{label}]", redacted)

    def _replace_value(match: re.Match[str]) -> str:
        return f"{match.group(1)}{match.group(2)}[REDACTED:value]"

    redacted = _SENSITIVE_QUOTED_VALUE_PATTERN.sub(_replace_value, redacted)
    redacted = _SENSITIVE_INLINE_VALUE_PATTERN.sub(_replace_value, redacted)
    redacted = _SENSITIVE_QUERY_PARAM_PATTERN.sub(r"\1[REDACTED:value]", redacted)
    redacted = _URL_CREDENTIALS_PATTERN.sub(r"\1[REDACTED:value]@", redacted)
    return redacted
