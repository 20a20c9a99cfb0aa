"""Tests for resurrector.tools.retry."""

from __future__ import annotations

import pytest

from resurrector.errors import (
    EmptyResponseError,
    ToolConnectionError,
    ToolResponseError,
    ToolTimeoutError,
    UnknownToolError,
)
from resurrector.tools.retry import ErrorKind, RetryPolicy, classify_error, extract_retry_after


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (ToolConnectionError("connection reset by peer"), ErrorKind.TRANSIENT),
        (ToolTimeoutError("Tool read_files timed out after 60s"), ErrorKind.TRANSIENT),
        (EmptyResponseError("Tool smart_chunk returned an empty response"), ErrorKind.TRANSIENT),
        (ToolResponseError("Rate limit reached for gpt-4o. Please try again in 20s."), ErrorKind.RATE_LIMIT),
        (ToolResponseError("Error 429: Too Many Requests"), ErrorKind.RATE_LIMIT),
        (ToolResponseError("RESOURCE_EXHAUSTED: retry later"), ErrorKind.RATE_LIMIT),
        (
            ToolResponseError("You exceeded your current quota, please check your plan and billing details."),
            ErrorKind.QUOTA,
        ),
        (ToolResponseError("Rate limit reached on tokens per day (TPD)"), ErrorKind.QUOTA),
        (ToolResponseError("Repository acme/widget not found"), ErrorKind.FATAL),
        (UnknownToolError("Tool nope is not registered"), ErrorKind.FATAL),
    ],
)
def test_classify_error(error: Exception, kind: ErrorKind) -> None:
    assert classify_error(error) is kind


@pytest.mark.parametrize(
    ("message", "seconds"),
    [
        ("Please try again in 1m30s.", 90.0),
        ("Please try again in 12.5s.", 12.5),
        ("try again in 350ms", 0.35),
        ("Retry after 20 seconds", 20.0),
        ('{"retryDelay": "45s"}', 45.0),
        ("Rate limited without a hint", None),
    ],
)
def test_extract_retry_after(message: str, seconds: float | None) -> None:
    result = extract_retry_after(message)

    if seconds is None:
        assert result is None
    else:
        assert result == pytest.approx(seconds)


def test_backoff_caps_long_hints() -> None:
    policy = RetryPolicy()
    error = ToolResponseError("Rate limit reached. Please try again in 1m30s.")

    assert policy.backoff(error, 1) == 60.0


def test_backoff_adds_a_second_to_hints() -> None:
    policy = RetryPolicy()
    error = ToolResponseError("Rate limit reached. Please try again in 12.5s.")

    assert policy.backoff(error, 1) == 14.0


def test_backoff_is_exponential_without_hint() -> None:
    policy = RetryPolicy(base_delay=10.0, max_delay=60.0)
    error = ToolResponseError("429 Too Many Requests")

    assert [policy.backoff(error, attempt) for attempt in (1, 2, 3, 4)] == [10.0, 20.0, 40.0, 60.0]


def test_policy_uses_pluggable_classifier() -> None:
    policy = RetryPolicy(classifier=lambda error: ErrorKind.QUOTA)

    assert policy.classify(ToolConnectionError("anything")) is ErrorKind.QUOTA
