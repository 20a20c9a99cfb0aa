"""Error taxonomy shared by the tool client, decoder, and orchestrator."""

from __future__ import annotations

import json
from typing import Optional


class ResurrectorError(RuntimeError):
    """Base class for all resurrector failures."""


class InvalidRequestError(ResurrectorError, ValueError):
    """Raised when a generation request is rejected before the pipeline starts."""


class ToolClientError(ResurrectorError):
    """Raised when a remote tool invocation fails after the retry policy ran."""

    def __init__(self, message: str, *, tool: Optional[str] = None) -> None:
        super().__init__(message)
        self.tool = tool


class UnknownToolError(ToolClientError, ValueError):
    """Raised for tool names missing from the endpoint table."""


class ToolArgumentError(ToolClientError, ValueError):
    """Raised when an invocation is missing arguments the tool requires."""


class ToolConnectionError(ToolClientError):
    """Raised when no transport could reach a tool endpoint."""


class ToolTimeoutError(ToolClientError):
    """Raised when a tool call exceeds its time allowance."""


class RateLimitError(ToolClientError):
    """Raised when a rate-limited call still fails after every backoff attempt."""

    def __init__(
        self,
        message: str,
        *,
        tool: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, tool=tool)
        self.retry_after = retry_after


class QuotaExceededError(ToolClientError):
    """Raised when the upstream provider reports an exhausted quota."""


class ToolResponseError(ToolClientError):
    """Raised when a tool marks its own response as an error."""


class EmptyResponseError(ToolClientError):
    """Raised when a tool response carries no text payload."""


class DecodeError(ResurrectorError, ValueError):
    """Raised when a tool payload cannot be turned into the expected structure.

    ``original`` keeps the first ``json.JSONDecodeError`` seen while parsing, so
    diagnostics point at the raw payload rather than at a repair attempt.
    """

    def __init__(
        self, message: str, *, original: Optional[json.JSONDecodeError] = None
    ) -> None:
        super().__init__(message)
        self.original = original


class PipelineError(ResurrectorError):
    """Raised when a generation run fails with nothing to fall back on."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class RunCancelledError(PipelineError):
    """Raised when a caller cancels a run through its cancellation token."""


__all__ = [
    "DecodeError",
    "EmptyResponseError",
    "InvalidRequestError",
    "PipelineError",
    "QuotaExceededError",
    "RateLimitError",
    "ResurrectorError",
    "RunCancelledError",
    "ToolArgumentError",
    "ToolClientError",
    "ToolConnectionError",
    "ToolResponseError",
    "ToolTimeoutError",
    "UnknownToolError",
]
