"""Error classification and redaction for persisted resolver errors."""

from __future__ import annotations

import asyncio
import re

from md_client.errors import MDAPIError, MDNetworkError, MDRateLimitError

MAX_ERROR_LENGTH = 500
REDACTED = "[REDACTED]"
TRUNCATION_SUFFIX = "... [truncated]"

_SENSITIVE_PATTERNS = [
    re.compile(r"api[_-]?key[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"bearer\s+\S+", re.IGNORECASE),
    re.compile(r"password[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"token[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"secret[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"https?://[^:/\s]+:[^@\s]+@", re.IGNORECASE),
    re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"),
    re.compile(r"internal\s+server", re.IGNORECASE),
    re.compile(r"stack\s*trace", re.IGNORECASE),
]


def sanitize_error(error: object) -> str:
    """Redact credentials and hosts from an error and cap its length.

    Example:
        >>> sanitize_error("Connecting to 10.0.0.5 failed, api_key=SECRET")
        'Connecting to [REDACTED] failed, [REDACTED]'
    """
    message = str(error) if error is not None else "Unknown error"
    for pattern in _SENSITIVE_PATTERNS:
        message = pattern.sub(REDACTED, message)
    if len(message) > MAX_ERROR_LENGTH:
        message = message[: MAX_ERROR_LENGTH - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX
    return message


def is_transient_error(exc: BaseException) -> bool:
    """Errors worth retrying with backoff: rate limits, network, timeouts, 5xx."""
    if isinstance(exc, (MDRateLimitError, MDNetworkError)):
        return True
    if isinstance(exc, MDAPIError):
        return exc.is_server_error
    return isinstance(exc, (asyncio.TimeoutError, OSError))
