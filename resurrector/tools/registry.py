"""Known MCP tools and the endpoints that serve them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import ToolArgumentError, UnknownToolError


class Endpoint(str, Enum):
    """Remote MCP servers hosting the pipeline's tools."""

    REPO_ANALYZER = "repo-analyzer"
    CODE_READER = "code-reader"
    DOC_GENERATOR = "doc-generator"


class ToolClass(str, Enum):
    """Timeout class: LLM-backed tools get a longer allowance than lookups."""

    LOOKUP = "lookup"
    GENERATION = "generation"


class Tool(Enum):
    """Closed set of tools the orchestrator may invoke."""

    GET_REPO_METADATA = ("get_repo_metadata", Endpoint.REPO_ANALYZER, ToolClass.LOOKUP, ("repoUrl",))
    ANALYZE_REPOSITORY = ("analyze_repository", Endpoint.REPO_ANALYZER, ToolClass.LOOKUP, ("repoUrl",))
    IDENTIFY_IMPORTANT_FILES = (
        "identify_important_files",
        Endpoint.REPO_ANALYZER,
        ToolClass.LOOKUP,
        ("fileTree",),
    )
    GET_COMMUNITY_INSIGHTS = (
        "get_community_insights",
        Endpoint.REPO_ANALYZER,
        ToolClass.LOOKUP,
        ("repoUrl",),
    )
    READ_FILES = ("read_files", Endpoint.CODE_READER, ToolClass.LOOKUP, ("repoUrl", "filePaths"))
    EXTRACT_SIGNATURES = ("extract_signatures", Endpoint.CODE_READER, ToolClass.LOOKUP, ("files",))
    EXTRACT_COMMANDS = ("extract_commands", Endpoint.CODE_READER, ToolClass.LOOKUP, ("files",))
    SMART_CHUNK = ("smart_chunk", Endpoint.CODE_READER, ToolClass.LOOKUP, ("files", "maxTokens"))
    GENERATE_README = (
        "generate_readme",
        Endpoint.DOC_GENERATOR,
        ToolClass.GENERATION,
        ("metadata", "analysis", "codeSummaries"),
    )
    VALIDATE_README = ("validate_readme", Endpoint.DOC_GENERATOR, ToolClass.GENERATION, ("readme",))
    ENHANCE_README = (
        "enhance_readme",
        Endpoint.DOC_GENERATOR,
        ToolClass.GENERATION,
        ("readme", "suggestions"),
    )

    def __init__(
        self,
        tool_name: str,
        endpoint: Endpoint,
        tool_class: ToolClass,
        required: Tuple[str, ...],
    ) -> None:
        self.tool_name = tool_name
        self.endpoint = endpoint
        self.tool_class = tool_class
        self.required = required

    @classmethod
    def resolve(cls, name: "Tool | str") -> "Tool":
        """Return the tool for a name; unknown names are programmer errors."""
        if isinstance(name, cls):
            return name
        for member in cls:
            if member.tool_name == name:
                return member
        raise UnknownToolError(f"Tool {name} is not registered with any endpoint", tool=str(name))


@dataclass(frozen=True)
class ToolInvocation:
    """One tool call: the resolved tool plus its arguments."""

    tool: Tool
    arguments: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        missing = [name for name in self.tool.required if name not in self.arguments]
        if missing:
            raise ToolArgumentError(
                f"Tool {self.tool.tool_name} is missing required arguments: {', '.join(missing)}",
                tool=self.tool.tool_name,
            )

    @property
    def name(self) -> str:
        return self.tool.tool_name

    @property
    def endpoint(self) -> Endpoint:
        return self.tool.endpoint


@dataclass(frozen=True)
class EndpointTarget:
    """Where and how to reach one endpoint, per transport."""

    endpoint: Endpoint
    streamable_url: str
    sse_url: str
    headers: Dict[str, str] = field(default_factory=dict)


DEFAULT_ENDPOINT_URLS: Dict[Endpoint, str] = {
    Endpoint.REPO_ANALYZER: "http://localhost:3002",
    Endpoint.CODE_READER: "http://localhost:3003",
    Endpoint.DOC_GENERATOR: "http://localhost:3004",
}


def resolve_targets(
    *,
    endpoints: Optional[Mapping[str, str]] = None,
    gateway_url: Optional[str] = None,
    profile_id: Optional[str] = None,
    token: Optional[str] = None,
) -> Dict[Endpoint, EndpointTarget]:
    """Build the endpoint table.

    With a gateway and profile every endpoint shares the gateway's MCP route;
    otherwise each endpoint is a standalone server exposing ``/mcp`` and ``/sse``.
    """
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    targets: Dict[Endpoint, EndpointTarget] = {}
    if gateway_url and profile_id:
        url = f"{gateway_url.rstrip('/')}/v1/mcp/{profile_id}"
        for endpoint in Endpoint:
            targets[endpoint] = EndpointTarget(endpoint, url, url, dict(headers))
        return targets

    overrides = endpoints or {}
    for endpoint in Endpoint:
        base = (overrides.get(endpoint.value) or DEFAULT_ENDPOINT_URLS[endpoint]).rstrip("/")
        targets[endpoint] = EndpointTarget(
            endpoint,
            streamable_url=f"{base}/mcp",
            sse_url=f"{base}/sse",
            headers=dict(headers),
        )
    return targets


__all__ = [
    "DEFAULT_ENDPOINT_URLS",
    "Endpoint",
    "EndpointTarget",
    "Tool",
    "ToolClass",
    "ToolInvocation",
    "resolve_targets",
]
