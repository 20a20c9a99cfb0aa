"""Persistent MCP connections, one per endpoint."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

import httpx
from mcp import ClientSession
from mcp.client import sse, streamable_http

from ..errors import ToolConnectionError
from ..logging import get_logger
from .registry import Endpoint, EndpointTarget

_logger = get_logger("tools.pool")

StreamOpener = Callable[[], Any]


class ToolSession(Protocol):
    """What the tool client needs from a live connection."""

    @property
    def closed(self) -> bool: ...

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any: ...

    async def close(self) -> None: ...


Connector = Callable[[Endpoint], Awaitable[ToolSession]]


class McpConnection:
    """An initialised MCP client session owned by a dedicated task.

    The SDK's transports are anyio context managers that must be exited by the
    task that entered them, so the session lives inside ``_run`` and ``close``
    only signals that task to unwind.
    """

    def __init__(self, endpoint: Endpoint, transport: str, opener: StreamOpener) -> None:
        self.endpoint = endpoint
        self.transport = transport
        self._opener = opener
        self._session: Optional[ClientSession] = None
        self._closing = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._session is None

    async def start(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        ready: asyncio.Future[None] = loop.create_future()
        self._task = loop.create_task(self._run(ready))
        try:
            await asyncio.wait_for(asyncio.shield(ready), timeout)
        except BaseException:
            await self.close()
            raise

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        session = self._session
        if session is None or self._closed:
            raise ToolConnectionError(
                f"Connection to {self.endpoint.value} is closed", tool=name
            )
        return await session.call_tool(name, arguments)

    async def close(self) -> None:
        self._closing.set()
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                task.cancel()
            except Exception as exc:
                _logger.debug("Error while closing %s connection: %s", self.endpoint.value, exc)
        self._closed = True

    async def _run(self, ready: asyncio.Future[None]) -> None:
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await stack.enter_async_context(self._opener())
                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()
                self._session = session
                if not ready.done():
                    ready.set_result(None)
                await self._closing.wait()
        except Exception as exc:
            if not ready.done():
                ready.set_exception(exc)
            else:
                _logger.warning(
                    "Connection to %s (%s) dropped: %s", self.endpoint.value, self.transport, exc
                )
        finally:
            self._session = None
            self._closed = True
            if not ready.done():
                ready.set_exception(
                    ToolConnectionError(f"Connection to {self.endpoint.value} closed during setup")
                )


@asynccontextmanager
async def _streamable_streams(url: str, headers: Mapping[str, str], timeout: float) -> AsyncIterator[Tuple[Any, Any]]:
    async with httpx.AsyncClient(headers=dict(headers), timeout=httpx.Timeout(timeout)) as http_client:
        async with streamable_http.streamable_http_client(url, http_client=http_client) as streams:
            read_stream, write_stream = streams[0], streams[1]
            yield read_stream, write_stream


@asynccontextmanager
async def _sse_streams(url: str, headers: Mapping[str, str], timeout: float) -> AsyncIterator[Tuple[Any, Any]]:
    async with sse.sse_client(url, headers=dict(headers), sse_read_timeout=timeout) as streams:
        read_stream, write_stream = streams[0], streams[1]
        yield read_stream, write_stream


class McpConnector:
    """Opens MCP connections, preferring streamable HTTP and falling back to SSE."""

    def __init__(
        self,
        targets: Mapping[Endpoint, EndpointTarget],
        *,
        connect_timeout: float = 10.0,
        read_timeout: float = 300.0,
    ) -> None:
        self.targets = dict(targets)
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    async def __call__(self, endpoint: Endpoint) -> McpConnection:
        target = self.targets.get(endpoint)
        if target is None:
            raise ToolConnectionError(f"No target configured for endpoint {endpoint.value}")

        attempts = (
            ("streamable-http", target.streamable_url, _streamable_streams),
            ("sse", target.sse_url, _sse_streams),
        )
        failures: List[str] = []
        for transport, url, factory in attempts:
            connection = McpConnection(
                endpoint,
                transport,
                lambda url=url, factory=factory: factory(url, target.headers, self.read_timeout),
            )
            try:
                await connection.start(self.connect_timeout)
            except Exception as exc:
                detail = str(exc) or exc.__class__.__name__
                _logger.debug("%s transport to %s failed: %s", transport, url, detail)
                failures.append(f"{transport}: {detail}")
                continue
            _logger.info("Connected to %s via %s (%s)", endpoint.value, transport, url)
            return connection

        raise ToolConnectionError(
            f"Unable to connect to {endpoint.value}: " + "; ".join(failures)
        )


class ConnectionPool:
    """Caches one connection per endpoint and coalesces concurrent connects.

    Lifecycle: ``borrow`` opens lazily and reuses, ``invalidate`` drops a broken
    connection so the next borrow reconnects, ``close_all`` shuts everything down.
    """

    def __init__(self, connector: Connector) -> None:
        self._connector = connector
        self._connections: Dict[Endpoint, ToolSession] = {}
        self._pending: Dict[Endpoint, asyncio.Task[ToolSession]] = {}
        self._lock = asyncio.Lock()

    @property
    def connector(self) -> Connector:
        return self._connector

    def __len__(self) -> int:
        return len(self._connections)

    async def borrow(self, endpoint: Endpoint) -> ToolSession:
        async with self._lock:
            connection = self._connections.get(endpoint)
            if connection is not None and not connection.closed:
                return connection
            if connection is not None:
                self._connections.pop(endpoint, None)
            pending = self._pending.get(endpoint)
            if pending is None:
                _logger.debug("Opening connection to %s", endpoint.value)
                pending = asyncio.get_running_loop().create_task(self._connector(endpoint))
                self._pending[endpoint] = pending
                pending.add_done_callback(
                    lambda task, key=endpoint: self._settle(key, task)
                )
        return await asyncio.shield(pending)

    async def invalidate(self, endpoint: Endpoint, connection: Optional[ToolSession] = None) -> None:
        async with self._lock:
            current = self._connections.get(endpoint)
            if current is None or (connection is not None and current is not connection):
                return
            self._connections.pop(endpoint, None)
        _logger.debug("Dropping cached connection to %s", endpoint.value)
        await _close_quietly(current)

    async def close_all(self) -> None:
        async with self._lock:
            connections = list(self._connections.values())
            pending = list(self._pending.values())
            self._connections.clear()
            self._pending.clear()
        for task in pending:
            task.cancel()
        for connection in connections:
            await _close_quietly(connection)

    def _settle(self, endpoint: Endpoint, task: "asyncio.Task[ToolSession]") -> None:
        if self._pending.get(endpoint) is task:
            del self._pending[endpoint]
        if task.cancelled() or task.exception() is not None:
            return
        self._connections[endpoint] = task.result()


async def _close_quietly(connection: ToolSession) -> None:
    try:
        await connection.close()
    except Exception as exc:
        _logger.debug("Ignoring error while closing connection: %s", exc)


__all__ = ["ConnectionPool", "Connector", "McpConnection", "McpConnector", "ToolSession"]
