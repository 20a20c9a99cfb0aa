"""Retry policy and error classification for tool calls.

Upstream LLM providers report rate limits and quota exhaustion as free text that
the tool servers pass through verbatim. Classification is therefore a substring
heuristic over error messages; the phrases are observed provider wording, not a
stable contract. Swap ``RetryPolicy.classifier`` to support another backend.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..errors import (
    EmptyResponseError,
    ToolArgumentError,
    ToolConnectionError,
    ToolResponseError,
    ToolTimeoutError,
    UnknownToolError,
)


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    FATAL = "fatal"


QUOTA_MARKERS: tuple[str, ...] = (
    "insufficient_quota",
    "exceeded your current quota",
    "quota exceeded",
    "quota has been exhausted",
    "check your plan and billing",
    "tokens per day",
    "requests per day",
    "(tpd)",
    "(rpd)",
)

RATE_LIMIT_MARKERS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "resource_exhausted",
    "try again in",
    "retry after",
    "retry-after",
)

_STATUS_429 = re.compile(r"(?<!\d)429(?!\d)")
_TRY_AGAIN = re.compile(
    r"(?:try again in|retry after|retry-after:?|retrydelay\"?:?\s*\"?)\s*"
    r"(?:(?P<hours>\d+(?:\.\d+)?)h)?\s*"
    r"(?:(?P<minutes>\d+(?:\.\d+)?)m(?!s))?\s*"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)\s*(?:s|sec|secs|seconds?)\b)?\s*"
    r"(?:(?P<millis>\d+(?:\.\d+)?)ms)?",
    re.IGNORECASE,
)


def classify_error(error: BaseException) -> ErrorKind:
    """Map a tool failure onto the retry taxonomy by inspecting its message."""
    if isinstance(error, (UnknownToolError, ToolArgumentError)):
        return ErrorKind.FATAL
    text = str(error).lower()
    if any(marker in text for marker in QUOTA_MARKERS):
        return ErrorKind.QUOTA
    if any(marker in text for marker in RATE_LIMIT_MARKERS) or _STATUS_429.search(text):
        return ErrorKind.RATE_LIMIT
    if isinstance(error, ToolResponseError):
        return ErrorKind.FATAL
    if isinstance(error, (ToolConnectionError, ToolTimeoutError, EmptyResponseError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.TRANSIENT


def extract_retry_after(message: str) -> Optional[float]:
    """Return the wait in seconds suggested by a provider message, if any.

    Understands hints such as ``try again in 1m30s``, ``try again in 12.5s``,
    ``retry after 20 seconds`` and ``try again in 350ms``.
    """
    for match in _TRY_AGAIN.finditer(message):
        parts = match.groupdict()
        if not any(parts.values()):
            continue
        seconds = 0.0
        seconds += float(parts["hours"] or 0) * 3600
        seconds += float(parts["minutes"] or 0) * 60
        seconds += float(parts["seconds"] or 0)
        seconds += float(parts["millis"] or 0) / 1000
        return seconds
    return None


@dataclass
class RetryPolicy:
    """Uniform retry rules applied by the tool client to every tool."""

    transient_retries: int = 1
    rate_limit_attempts: int = 3
    base_delay: float = 10.0
    max_delay: float = 60.0
    classifier: Callable[[BaseException], ErrorKind] = classify_error

    def classify(self, error: BaseException) -> ErrorKind:
        return self.classifier(error)

    def backoff(self, error: BaseException, attempt: int) -> float:
        """Seconds to wait before rate-limit retry ``attempt`` (1-based), capped."""
        hint = extract_retry_after(str(error))
        if hint is not None:
            delay = float(math.ceil(hint)) + 1.0
        else:
            delay = self.base_delay * (2 ** max(attempt - 1, 0))
        return min(delay, self.max_delay)


__all__ = [
    "ErrorKind",
    "QUOTA_MARKERS",
    "RATE_LIMIT_MARKERS",
    "RetryPolicy",
    "classify_error",
    "extract_retry_after",
]
