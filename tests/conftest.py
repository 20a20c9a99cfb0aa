from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pytest

from resurrector.tools import Tool


class ScriptedToolClient:
    """Tool client double that replays canned responses per tool name.

    A response may be a string, an exception to raise, or a list consumed one
    entry per call.
    """

    def __init__(self, responses: Mapping[str, Any]) -> None:
        self.responses: Dict[str, Any] = dict(responses)
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.cleaned_up = False

    async def call_tool(
        self,
        tool: Tool | str,
        arguments: Optional[Mapping[str, Any]] = None,
        *,
        cancel_token: Any = None,
    ) -> str:
        name = tool.tool_name if isinstance(tool, Tool) else str(tool)
        self.calls.append((name, dict(arguments or {})))
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        if name not in self.responses:
            raise AssertionError(f"Unexpected tool call: {name}")
        response = self.responses[name]
        if isinstance(response, list):
            response = response.pop(0)
        if callable(response) and not isinstance(response, BaseException):
            response = response(arguments or {})
        if isinstance(response, BaseException):
            raise response
        return response

    async def cleanup(self) -> None:
        self.cleaned_up = True

    def called(self, name: str) -> List[Dict[str, Any]]:
        return [arguments for tool, arguments in self.calls if tool == name]

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.calls]


def _happy_responses() -> Dict[str, Any]:
    return {
        "get_repo_metadata": json.dumps(
            {
                "name": "widget",
                "description": "A tiny widget service",
                "stars": 12,
                "language": "Go",
                "license": "MIT",
            }
        ),
        "analyze_repository": json.dumps(
            {"tree": ["main.go", "go.mod", "README.md"], "languages": {"Go": 100}}
        ),
        "identify_important_files": json.dumps(["main.go", "go.mod"]),
        "get_community_insights": json.dumps({"contributors": 3, "openIssues": 1}),
        "read_files": json.dumps(
            [
                {"path": "go.mod", "content": "module widget"},
                {"path": "main.go", "content": "package main"},
            ]
        ),
        "extract_signatures": json.dumps([{"path": "main.go", "signatures": ["func main()"]}]),
        "extract_commands": json.dumps({"install": ["go mod download"], "run": ["go run ."]}),
        "smart_chunk": json.dumps([{"path": "main.go", "content": "package main"}]),
        "generate_readme": "```markdown\n# widget\n\nA drafted README.\n```",
        "validate_readme": json.dumps({"score": 95, "suggestions": []}),
        "enhance_readme": "# widget\n\nAn enhanced README.",
    }


@pytest.fixture
def happy_responses() -> Dict[str, Any]:
    """Canned tool outputs for a successful run against acme/widget."""
    return _happy_responses()


@pytest.fixture
def make_tool_client() -> Callable[..., ScriptedToolClient]:
    def factory(responses: Optional[Mapping[str, Any]] = None, **overrides: Any) -> ScriptedToolClient:
        merged = dict(_happy_responses() if responses is None else responses)
        merged.update(overrides)
        return ScriptedToolClient(merged)

    return factory
