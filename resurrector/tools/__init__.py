"""MCP tool access: registry, connection pool, retry policy and client."""

from .client import DEFAULT_TIMEOUTS, ToolClient
from .pool import ConnectionPool, McpConnection, McpConnector, ToolSession
from .registry import Endpoint, EndpointTarget, Tool, ToolClass, ToolInvocation, resolve_targets
from .retry import ErrorKind, RetryPolicy, classify_error, extract_retry_after

__all__ = [
    "ConnectionPool",
    "DEFAULT_TIMEOUTS",
    "Endpoint",
    "EndpointTarget",
    "ErrorKind",
    "McpConnection",
    "McpConnector",
    "RetryPolicy",
    "Tool",
    "ToolClass",
    "ToolClient",
    "ToolInvocation",
    "ToolSession",
    "classify_error",
    "extract_retry_after",
    "resolve_targets",
]
