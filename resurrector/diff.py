"""Unified diffs between a prior README and a regenerated one."""

from __future__ import annotations

import difflib


def render_diff(original: str, updated: str, *, filename: str = "README.md") -> str:
    """Return a unified diff, or an empty string when the texts match."""
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=f"{filename} (original)",
        tofile=f"{filename} (resurrected)",
    )
    return "".join(diff)


def change_summary(original: str, updated: str) -> str:
    """Describe the diff as ``+added -removed`` line counts."""
    added = removed = 0
    for line in difflib.ndiff(original.splitlines(), updated.splitlines()):
        if line.startswith("+ "):
            added += 1
        elif line.startswith("- "):
            removed += 1
    return f"+{added} -{removed}"


__all__ = ["change_summary", "render_diff"]
