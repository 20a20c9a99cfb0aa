"""Fail-safe README synthesis when the generation pipeline fails."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote

from .models import COMMAND_CATEGORIES, RepositoryMetadata

_COMMAND_TITLES = {
    "install": "Install",
    "run": "Run",
    "test": "Test",
    "build": "Build",
    "lint": "Lint",
    "other": "Other commands",
}

REASON_LIMIT = 200


def build_fallback_readme(
    metadata: RepositoryMetadata,
    analysis: Mapping[str, Any] | None = None,
    commands: Mapping[str, Iterable[str]] | None = None,
    *,
    reason: str | None = None,
) -> str:
    """Return a minimal README assembled from already collected repository facts.

    Pure formatting: the output depends only on the arguments.
    """
    lines: List[str] = [f"# {metadata.name}", ""]

    badges = _badges(metadata)
    if badges:
        lines.extend([" ".join(badges), ""])

    if metadata.description:
        lines.extend([metadata.description, ""])

    stats = _stats_rows(metadata)
    if stats:
        lines.extend(["## Repository Stats", "", "| Metric | Value |", "| --- | --- |"])
        lines.extend(f"| {label} | {value} |" for label, value in stats)
        lines.append("")

    languages = _languages(analysis, metadata.language)
    if languages:
        lines.extend(["## Languages", ""])
        lines.extend(f"- {entry}" for entry in languages)
        lines.append("")

    if metadata.topics:
        lines.extend(["## Topics", "", " ".join(f"`{topic}`" for topic in metadata.topics), ""])

    command_blocks = _command_blocks(commands)
    if command_blocks:
        lines.extend(["## Getting Started", ""])
        for title, entries in command_blocks:
            lines.extend([f"### {title}", "", "```bash", *entries, "```", ""])

    if metadata.url:
        lines.extend(["## Source", "", f"[{metadata.url}]({metadata.url})", ""])

    note = (
        "_This README was assembled from repository metadata because the full generation "
        "pipeline did not finish"
    )
    cleaned = _reason_note(reason)
    if cleaned:
        note += f" ({cleaned})"
    note += ". Run the generator again for a complete document._"
    lines.extend(["---", "", note])

    return "\n".join(lines).strip() + "\n"


def _badges(metadata: RepositoryMetadata) -> List[str]:
    badges: List[str] = []
    if metadata.license:
        badges.append(_badge("license", metadata.license, "blue"))
    if metadata.language:
        badges.append(_badge("language", metadata.language, "informational"))
    if metadata.stars is not None:
        badges.append(_badge("stars", str(metadata.stars), "yellow"))
    return badges


def _badge(label: str, message: str, color: str) -> str:
    url = f"https://img.shields.io/badge/{_shield_escape(label)}-{_shield_escape(message)}-{color}"
    return f"![{label}]({url})"


def _shield_escape(text: str) -> str:
    escaped = text.replace("-", "--").replace("_", "__").replace(" ", "_")
    return quote(escaped, safe="_-.")


def _stats_rows(metadata: RepositoryMetadata) -> List[Tuple[str, str]]:
    rows: List[Tuple[str, str]] = []
    if metadata.stars is not None:
        rows.append(("Stars", f"{metadata.stars:,}"))
    if metadata.language:
        rows.append(("Primary language", metadata.language))
    if metadata.license:
        rows.append(("License", metadata.license))
    if metadata.default_branch:
        rows.append(("Default branch", f"`{metadata.default_branch}`"))
    if metadata.updated_at:
        rows.append(("Last updated", metadata.updated_at))
    return rows


def _languages(analysis: Mapping[str, Any] | None, primary: Optional[str]) -> List[str]:
    raw = analysis.get("languages") if isinstance(analysis, Mapping) else None
    entries: List[str] = []
    if isinstance(raw, Mapping):
        for name, share in raw.items():
            entries.append(_language_entry(str(name), share))
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, Mapping):
                name = item.get("name") or item.get("language")
                if name:
                    entries.append(_language_entry(str(name), item.get("percentage")))
            elif item:
                entries.append(str(item))
    if not entries and primary:
        entries.append(primary)
    return entries


def _language_entry(name: str, share: Any) -> str:
    if isinstance(share, (int, float)) and not isinstance(share, bool) and 0 < share <= 100:
        return f"{name} ({share:g}%)"
    return name


def _command_blocks(commands: Mapping[str, Iterable[str]] | None) -> List[Tuple[str, List[str]]]:
    if not commands:
        return []
    blocks: List[Tuple[str, List[str]]] = []
    categories: Dict[str, None] = dict.fromkeys(COMMAND_CATEGORIES)
    categories.update(dict.fromkeys(commands))
    for category in categories:
        entries = [str(entry).strip() for entry in commands.get(category) or [] if str(entry).strip()]
        if entries:
            title = _COMMAND_TITLES.get(category, category.replace("_", " ").title())
            blocks.append((title, entries))
    return blocks


def _reason_note(reason: str | None) -> str | None:
    """First non-blank line of the failure, without a trailing period, capped at REASON_LIMIT."""
    if not reason:
        return None
    lines = [" ".join(line.split()) for line in reason.splitlines()]
    first = next((line for line in lines if line), "").rstrip(".")
    if not first:
        return None
    if len(first) > REASON_LIMIT:
        return first[:REASON_LIMIT] + "…"
    return first


__all__ = ["build_fallback_readme"]
