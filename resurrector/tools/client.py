"""Tool client: one entry point for every remote tool call."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from ..cancellation import CancellationToken
from ..decoding import extract_text
from ..errors import (
    QuotaExceededError,
    RateLimitError,
    RunCancelledError,
    ToolArgumentError,
    ToolClientError,
    ToolConnectionError,
    ToolTimeoutError,
    UnknownToolError,
)
from ..logging import get_logger
from .pool import ConnectionPool, McpConnector, ToolSession
from .registry import Tool, ToolClass, ToolInvocation, resolve_targets
from .retry import ErrorKind, RetryPolicy, extract_retry_after

if TYPE_CHECKING:
    from ..config import ResurrectorConfig

T = TypeVar("T")

DEFAULT_TIMEOUTS: Dict[ToolClass, float] = {
    ToolClass.LOOKUP: 60.0,
    ToolClass.GENERATION: 120.0,
}

Sleep = Callable[[float], Awaitable[Any]]


class ToolClient:
    """Calls tools through pooled connections under a uniform retry policy.

    Callers only ever see the final outcome: text on success, or a
    ``ToolClientError`` subclass once the policy has given up.
    """

    def __init__(
        self,
        pool: ConnectionPool | None = None,
        *,
        policy: RetryPolicy | None = None,
        timeouts: Optional[Mapping[ToolClass, float]] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.pool = pool if pool is not None else ConnectionPool(McpConnector(resolve_targets()))
        self.policy = policy or RetryPolicy()
        self.timeouts = dict(DEFAULT_TIMEOUTS)
        if timeouts:
            self.timeouts.update(timeouts)
        self._sleep = sleep
        self.logger = get_logger("tools.client")

    @classmethod
    def from_config(cls, config: "ResurrectorConfig", **kwargs: Any) -> "ToolClient":
        tools = config.tools
        targets = resolve_targets(
            endpoints=tools.endpoints,
            gateway_url=tools.gateway_url,
            profile_id=tools.profile_id,
            token=tools.token,
        )
        connector = McpConnector(targets, connect_timeout=tools.connect_timeout)
        retry = config.retry
        policy = RetryPolicy(
            transient_retries=retry.transient_retries,
            rate_limit_attempts=retry.rate_limit_attempts,
            base_delay=retry.base_delay,
            max_delay=retry.max_delay,
        )
        timeouts = {
            ToolClass.LOOKUP: tools.lookup_timeout,
            ToolClass.GENERATION: tools.generation_timeout,
        }
        return cls(ConnectionPool(connector), policy=policy, timeouts=timeouts, **kwargs)

    async def call_tool(
        self,
        tool: Tool | str,
        arguments: Optional[Mapping[str, Any]] = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        """Invoke ``tool`` and return its text payload."""
        invocation = ToolInvocation(Tool.resolve(tool), dict(arguments or {}))
        name = invocation.name
        endpoint = invocation.endpoint
        timeout = self.timeouts[invocation.tool.tool_class]

        transient_left = self.policy.transient_retries
        rate_limited = 0
        attempt = 0
        while True:
            attempt += 1
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self.logger.info("Calling %s on %s (attempt %d)", name, endpoint.value, attempt)

            connection: ToolSession | None = None
            try:
                connection = await self._guard(self.pool.borrow(endpoint), cancel_token)
                response = await self._guard(
                    self._with_timeout(
                        connection.call_tool(name, invocation.arguments), timeout, name
                    ),
                    cancel_token,
                )
                return extract_text(response, tool=name)
            except (UnknownToolError, ToolArgumentError, RunCancelledError):
                raise
            except Exception as exc:
                error = _as_tool_error(exc, name)
                kind = self.policy.classify(error)

                if kind is ErrorKind.QUOTA:
                    self.logger.error("Quota exhausted while calling %s: %s", name, error)
                    raise QuotaExceededError(str(error), tool=name) from exc

                if kind is ErrorKind.RATE_LIMIT:
                    rate_limited += 1
                    if rate_limited > self.policy.rate_limit_attempts:
                        raise RateLimitError(
                            f"Rate limit persisted after {self.policy.rate_limit_attempts} retries: {error}",
                            tool=name,
                            retry_after=extract_retry_after(str(error)),
                        ) from exc
                    delay = self.policy.backoff(error, rate_limited)
                    self.logger.warning(
                        "Rate limited calling %s; waiting %.0fs before retry %d/%d",
                        name,
                        delay,
                        rate_limited,
                        self.policy.rate_limit_attempts,
                    )
                    await self._guard(self._sleep(delay), cancel_token)
                    continue

                if kind is ErrorKind.TRANSIENT and transient_left > 0:
                    transient_left -= 1
                    self.logger.warning(
                        "Transient failure calling %s on %s: %s; reconnecting",
                        name,
                        endpoint.value,
                        error,
                    )
                    if connection is not None:
                        await self.pool.invalidate(endpoint, connection)
                    continue

                if error is exc:
                    raise
                raise error from exc

    async def cleanup(self) -> None:
        """Close every pooled connection."""
        await self.pool.close_all()

    async def _with_timeout(self, call: Awaitable[T], timeout: float, name: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise ToolTimeoutError(f"Tool {name} timed out after {timeout:.0f}s", tool=name) from exc

    async def _guard(
        self, awaitable: Awaitable[T], cancel_token: CancellationToken | None
    ) -> T:
        """Await ``awaitable`` unless the token is cancelled first."""
        if cancel_token is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        raise RunCancelledError(cancel_token.reason)


def _as_tool_error(exc: Exception, name: str) -> ToolClientError:
    if isinstance(exc, ToolClientError):
        if exc.tool is None:
            exc.tool = name
        return exc
    message = str(exc) or exc.__class__.__name__
    return ToolConnectionError(f"Tool {name} failed: {message}", tool=name)


__all__ = ["DEFAULT_TIMEOUTS", "ToolClient"]
