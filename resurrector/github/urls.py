"""Repository URL parsing for GitHub-hosted projects."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidRequestError

# Deep links such as ``/tree/main/src`` resolve to the repository itself.
_GITHUB_URL = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/"
    r"(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+?)(?:\.git)?(?:[/#?].*)?$"
)


@dataclass(frozen=True)
class RepositoryRef:
    """Owner/name pair identifying a GitHub repository."""

    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.slug}"


def parse_repository_url(url: str) -> Optional[RepositoryRef]:
    """Return the repository reference for a GitHub URL, or None when unrecognised."""
    if not url:
        return None
    match = _GITHUB_URL.match(url.strip())
    if match is None:
        return None
    name = match.group("repo")
    if name in {".", ".."}:
        return None
    return RepositoryRef(owner=match.group("owner"), name=name)


def is_repository_url(url: Optional[str]) -> bool:
    return parse_repository_url(url or "") is not None


def require_repository(url: Optional[str]) -> RepositoryRef:
    ref = parse_repository_url(url or "")
    if ref is None:
        raise InvalidRequestError("Invalid GitHub URL")
    return ref


__all__ = ["RepositoryRef", "is_repository_url", "parse_repository_url", "require_repository"]
