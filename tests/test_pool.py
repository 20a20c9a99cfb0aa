"""Tests for resurrector.tools.pool."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List

import httpx
import pytest

from resurrector.errors import ToolConnectionError
from resurrector.tools import pool as pool_module
from resurrector.tools.pool import ConnectionPool, McpConnector
from resurrector.tools.registry import Endpoint, resolve_targets


class FakeSession:
    def __init__(self, label: str) -> None:
        self.label = label
        self.closed = False

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        return {"content": [{"type": "text", "text": f"{self.label}:{name}"}]}

    async def close(self) -> None:
        self.closed = True


class CountingConnector:
    def __init__(self, *, failures: int = 0) -> None:
        self.calls: List[Endpoint] = []
        self.sessions: List[FakeSession] = []
        self._failures = failures

    async def __call__(self, endpoint: Endpoint) -> FakeSession:
        self.calls.append(endpoint)
        await asyncio.sleep(0)
        if self._failures:
            self._failures -= 1
            raise ToolConnectionError(f"Unable to connect to {endpoint.value}")
        session = FakeSession(f"{endpoint.value}#{len(self.sessions) + 1}")
        self.sessions.append(session)
        return session


def test_concurrent_borrows_share_one_connect() -> None:
    connector = CountingConnector()
    pool = ConnectionPool(connector)

    async def scenario():
        return await asyncio.gather(*(pool.borrow(Endpoint.CODE_READER) for _ in range(3)))

    sessions = asyncio.run(scenario())

    assert connector.calls == [Endpoint.CODE_READER]
    assert sessions[0] is sessions[1] is sessions[2]
    assert len(pool) == 1


def test_each_endpoint_gets_its_own_connection() -> None:
    connector = CountingConnector()
    pool = ConnectionPool(connector)

    async def scenario():
        first = await pool.borrow(Endpoint.REPO_ANALYZER)
        second = await pool.borrow(Endpoint.DOC_GENERATOR)
        again = await pool.borrow(Endpoint.REPO_ANALYZER)
        return first, second, again

    first, second, again = asyncio.run(scenario())

    assert first is again
    assert first is not second
    assert len(pool) == 2


def test_failed_connect_is_not_cached() -> None:
    connector = CountingConnector(failures=1)
    pool = ConnectionPool(connector)

    async def scenario():
        with pytest.raises(ToolConnectionError):
            await pool.borrow(Endpoint.CODE_READER)
        return await pool.borrow(Endpoint.CODE_READER)

    session = asyncio.run(scenario())

    assert session.label == "code-reader#1"
    assert len(connector.calls) == 2


def test_invalidate_closes_and_reconnects() -> None:
    connector = CountingConnector()
    pool = ConnectionPool(connector)

    async def scenario():
        first = await pool.borrow(Endpoint.CODE_READER)
        await pool.invalidate(Endpoint.CODE_READER, first)
        second = await pool.borrow(Endpoint.CODE_READER)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.closed is True
    assert second is not first
    assert len(connector.calls) == 2


def test_invalidate_ignores_stale_connection() -> None:
    connector = CountingConnector()
    pool = ConnectionPool(connector)
    stale = FakeSession("stale")

    async def scenario():
        current = await pool.borrow(Endpoint.CODE_READER)
        await pool.invalidate(Endpoint.CODE_READER, stale)
        return current, await pool.borrow(Endpoint.CODE_READER)

    current, again = asyncio.run(scenario())

    assert current is again
    assert current.closed is False


def test_closed_connection_is_replaced_on_borrow() -> None:
    connector = CountingConnector()
    pool = ConnectionPool(connector)

    async def scenario():
        first = await pool.borrow(Endpoint.DOC_GENERATOR)
        first.closed = True
        return first, await pool.borrow(Endpoint.DOC_GENERATOR)

    first, second = asyncio.run(scenario())

    assert second is not first
    assert len(connector.calls) == 2


def test_close_all_closes_every_connection() -> None:
    connector = CountingConnector()
    pool = ConnectionPool(connector)

    async def scenario():
        for endpoint in Endpoint:
            await pool.borrow(endpoint)
        await pool.close_all()

    asyncio.run(scenario())

    assert len(pool) == 0
    assert all(session.closed for session in connector.sessions)


class FakeClientSession:
    def __init__(self, read_stream: Any, write_stream: Any) -> None:
        self.read_stream = read_stream

    async def __aenter__(self) -> "FakeClientSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def initialize(self) -> None:
        return None

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        return {"content": [{"type": "text", "text": f"{name} over {self.read_stream}"}]}


def _refusing(opened: List[str]):
    @asynccontextmanager
    async def opener(url: str, headers: Dict[str, str], timeout: float):
        opened.append(url)
        raise httpx.ConnectError("connection refused")
        yield  # pragma: no cover

    return opener


def _accepting(opened: List[str], label: str):
    @asynccontextmanager
    async def opener(url: str, headers: Dict[str, str], timeout: float):
        opened.append(url)
        yield label, "write"

    return opener


def test_connector_prefers_streamable_http(monkeypatch: pytest.MonkeyPatch) -> None:
    opened: List[str] = []
    monkeypatch.setattr(pool_module, "ClientSession", FakeClientSession)
    monkeypatch.setattr(pool_module, "_streamable_streams", _accepting(opened, "streamable"))
    monkeypatch.setattr(pool_module, "_sse_streams", _accepting(opened, "sse"))
    connector = McpConnector(resolve_targets())

    async def scenario():
        connection = await connector(Endpoint.CODE_READER)
        try:
            return connection.transport, await connection.call_tool("read_files", {})
        finally:
            await connection.close()

    transport, response = asyncio.run(scenario())

    assert transport == "streamable-http"
    assert opened == ["http://localhost:3003/mcp"]
    assert response["content"][0]["text"] == "read_files over streamable"


def test_connector_falls_back_to_sse(monkeypatch: pytest.MonkeyPatch) -> None:
    opened: List[str] = []
    monkeypatch.setattr(pool_module, "ClientSession", FakeClientSession)
    monkeypatch.setattr(pool_module, "_streamable_streams", _refusing(opened))
    monkeypatch.setattr(pool_module, "_sse_streams", _accepting(opened, "sse"))
    connector = McpConnector(resolve_targets())

    async def scenario():
        connection = await connector(Endpoint.DOC_GENERATOR)
        transport = connection.transport
        await connection.close()
        return transport, connection.closed

    transport, closed = asyncio.run(scenario())

    assert transport == "sse"
    assert opened == ["http://localhost:3004/mcp", "http://localhost:3004/sse"]
    assert closed is True


def test_connector_raises_when_every_transport_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    opened: List[str] = []
    monkeypatch.setattr(pool_module, "_streamable_streams", _refusing(opened))
    monkeypatch.setattr(pool_module, "_sse_streams", _refusing(opened))
    connector = McpConnector(resolve_targets())

    with pytest.raises(ToolConnectionError) as excinfo:
        asyncio.run(connector(Endpoint.REPO_ANALYZER))

    message = str(excinfo.value)
    assert "streamable-http: connection refused" in message
    assert "sse: connection refused" in message
    assert len(opened) == 2
