"""Turn raw tool responses into text and leniently parsed JSON.

LLM-backed tools wrap JSON in prose, fence it in markdown, or stop mid-token when
they hit their output limit. ``decode_json`` tries progressively looser strategies
and reports which one succeeded so callers can tell a clean parse from a repaired
one. The repair pass is a best-effort heuristic, not a parser: it can drop the
last incomplete entry, and anything it cannot close into valid JSON raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from .errors import DecodeError, EmptyResponseError, ToolResponseError

_WRAPPING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?([\s\S]*?)\n?\s*```$")
_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```[\w+-]*\s*([\s\S]*?)\s*```")

# Trailing fragments left behind once an unterminated string has been cut off.
_DANGLING_KEY = re.compile(r'[{,]\s*"(?:[^"\\]|\\.)*"\s*(?::\s*)?$')
_PARTIAL_LITERAL = re.compile(r"(?<=[:,\[])\s*(?:t|tr|tru|f|fa|fal|fals|n|nu|nul)$")
_PARTIAL_NUMBER = re.compile(r"(?<=\d)[.eE][+-]?$|(?<=[:,\[])\s*-$")


@dataclass(frozen=True)
class DecodedJson:
    """Parsed value plus the strategy that produced it."""

    value: Any
    strategy: str

    @property
    def repaired(self) -> bool:
        return self.strategy == "repaired"


def extract_text(response: Any, *, tool: Optional[str] = None) -> str:
    """Return the text payload of an MCP tool result.

    Accepts SDK result objects as well as plain dictionaries with the same shape.
    """
    content = _field(response, "content") or []
    parts: List[str] = []
    for item in content:
        if _field(item, "type") not in (None, "text"):
            continue
        text = _field(item, "text")
        if isinstance(text, str):
            parts.append(text)
    text = "\n".join(parts)

    if _field(response, "isError"):
        message = text.strip() or "Tool reported an error without details"
        raise ToolResponseError(message, tool=tool)
    if not text.strip():
        label = f"Tool {tool}" if tool else "Tool"
        raise EmptyResponseError(f"{label} returned an empty response", tool=tool)
    return text


def strip_code_fence(text: str) -> str:
    """Remove a single markdown fence wrapping the whole text, if present."""
    cleaned = text.strip()
    match = _WRAPPING_FENCE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def decode_json(text: str) -> DecodedJson:
    """Parse JSON that may be fenced, wrapped in prose, or truncated.

    Raises ``DecodeError`` built from the first parse error when every strategy fails.
    """
    cleaned = strip_code_fence(text)
    try:
        return DecodedJson(json.loads(cleaned), "direct")
    except json.JSONDecodeError as exc:
        original = exc

    fence = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    if fence:
        try:
            return DecodedJson(json.loads(fence.group(1).strip()), "fenced")
        except json.JSONDecodeError:
            pass

    start, end = _outer_span(cleaned)
    if start != -1 and end > start:
        try:
            return DecodedJson(json.loads(cleaned[start : end + 1]), "span")
        except json.JSONDecodeError:
            pass

    if start != -1:
        candidates = [cleaned[start:]]
        if end > start and cleaned[start : end + 1] != candidates[0]:
            candidates.append(cleaned[start : end + 1])
        for candidate in candidates:
            try:
                return DecodedJson(json.loads(repair_truncated_json(candidate)), "repaired")
            except json.JSONDecodeError:
                continue

    raise DecodeError(str(original), original=original) from original


def parse_json_lenient(text: str) -> Any:
    return decode_json(text).value


def repair_truncated_json(raw: str) -> str:
    """Close JSON that was cut off mid-generation.

    Cuts an unterminated string back to the last position outside it, strips the
    incomplete trailing entry and any dangling comma, then appends one closer per
    unmatched ``{``/``[`` in nesting order.
    """
    text = raw.rstrip()
    cut = _unterminated_string_start(text)
    if cut is not None:
        text = text[:cut]

    while True:
        before = text
        text = text.rstrip()
        if text.endswith(","):
            text = text[:-1]
            continue
        literal = _PARTIAL_LITERAL.search(text) or _PARTIAL_NUMBER.search(text)
        if literal:
            text = text[: literal.start()]
            continue
        stack = _open_containers(text)
        if stack and stack[-1] == "{":
            dangling = _DANGLING_KEY.search(text)
            if dangling:
                keep = 1 if text[dangling.start()] == "{" else 0
                text = text[: dangling.start() + keep]
                continue
        if text == before:
            break

    closers = "".join("}" if opener == "{" else "]" for opener in reversed(_open_containers(text)))
    return text + closers


def _outer_span(text: str) -> tuple[int, int]:
    first_brace = text.find("{")
    first_bracket = text.find("[")
    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        return first_brace, text.rfind("}")
    if first_bracket != -1:
        return first_bracket, text.rfind("]")
    return -1, -1


def _unterminated_string_start(text: str) -> Optional[int]:
    in_string = False
    escaped = False
    start = -1
    for index, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            if in_string:
                start = index
    return start if in_string else None


def _open_containers(text: str) -> List[str]:
    stack: List[str] = []
    in_string = False
    escaped = False
    for char in text:
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            stack.append(char)
        elif char in "}]" and stack:
            stack.pop()
    return stack


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


__all__ = [
    "DecodedJson",
    "decode_json",
    "extract_text",
    "parse_json_lenient",
    "repair_truncated_json",
    "strip_code_fence",
]
