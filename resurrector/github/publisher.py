"""Pull-request publishing through the GitHub REST API."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Optional

import httpx

from ..errors import ResurrectorError
from ..logging import get_logger
from .urls import require_repository

GITHUB_API_URL = "https://api.github.com"

DEFAULT_COMMIT_MESSAGE = "docs: update README.md via README Resurrector"
DEFAULT_PR_TITLE = "docs: update README.md generated by README Resurrector"
DEFAULT_PR_BODY = (
    "## README Resurrector\n\n"
    "This README was generated by README Resurrector from the repository's metadata, "
    "source files and community activity.\n\n"
    "**What's included:**\n"
    "- Detected tech stack and project structure\n"
    "- Install, run and test commands verified against config files\n"
    "- Community insights and contributor acknowledgments\n\n"
    "---\n"
    "*Review the changes and merge when ready.*"
)


class PublishError(ResurrectorError):
    """Raised when a GitHub API call needed to open the pull request fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class PullRequestOutcome:
    url: str
    number: int
    branch_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "prUrl": self.url,
            "prNumber": self.number,
            "branchName": self.branch_name,
        }


def _default_branch_name() -> str:
    return f"readme-resurrector-{datetime.now(UTC).strftime('%Y%m%d%H%M%S')}"


class GitHubPublisher:
    """Creates a branch, commits README.md and opens a pull request."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = GITHUB_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        branch_namer: Callable[[], str] = _default_branch_name,
    ) -> None:
        if not token:
            raise PublishError("GitHub token required. Provide a token with repo write access.")
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout
        self._branch_namer = branch_namer
        self.logger = get_logger("github.publisher")

    async def publish_readme(
        self,
        repository_url: str,
        readme: str,
        *,
        title: str = DEFAULT_PR_TITLE,
        body: str = DEFAULT_PR_BODY,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
    ) -> PullRequestOutcome:
        """Open a pull request replacing README.md on the default branch."""
        repo = require_repository(repository_url)
        headers = {
            "Authorization": f"token {self._token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "readme-resurrector",
        }
        async with httpx.AsyncClient(
            base_url=self._api_url,
            headers=headers,
            transport=self._transport,
            timeout=self._timeout,
        ) as client:
            prefix = f"/repos/{repo.owner}/{repo.name}"

            repo_data = await self._request(client, "GET", prefix, "fetch repository info")
            base_branch = repo_data.get("default_branch") or "main"

            ref_data = await self._request(
                client, "GET", f"{prefix}/git/ref/heads/{base_branch}", "read branch ref"
            )
            base_sha = (ref_data.get("object") or {}).get("sha")
            if not base_sha:
                raise PublishError(f"Branch {base_branch} has no commit SHA")

            branch_name = self._branch_namer()
            await self._request(
                client,
                "POST",
                f"{prefix}/git/refs",
                "create branch",
                json={"ref": f"refs/heads/{branch_name}", "sha": base_sha},
            )
            self.logger.info("Created branch %s on %s", branch_name, repo.slug)

            content: Dict[str, Any] = {
                "message": commit_message,
                "content": base64.b64encode(readme.encode("utf-8")).decode("ascii"),
                "branch": branch_name,
            }
            existing = await client.get(f"{prefix}/contents/README.md", params={"ref": base_branch})
            if existing.status_code == httpx.codes.OK:
                existing_sha = existing.json().get("sha")
                if existing_sha:
                    content["sha"] = existing_sha
            await self._request(
                client, "PUT", f"{prefix}/contents/README.md", "commit README.md", json=content
            )

            pr_data = await self._request(
                client,
                "POST",
                f"{prefix}/pulls",
                "open pull request",
                json={"title": title, "body": body, "head": branch_name, "base": base_branch},
            )

        outcome = PullRequestOutcome(
            url=str(pr_data.get("html_url") or ""),
            number=int(pr_data.get("number") or 0),
            branch_name=branch_name,
        )
        self.logger.info("Opened pull request #%d on %s", outcome.number, repo.slug)
        return outcome

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        action: str,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise PublishError(f"Failed to {action}: {exc}") from exc
        if response.is_error:
            detail = _error_detail(response)
            raise PublishError(f"Failed to {action}: {detail}", status_code=response.status_code)
        payload = response.json() if response.content else {}
        return payload if isinstance(payload, dict) else {}


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase


__all__ = ["GITHUB_API_URL", "GitHubPublisher", "PublishError", "PullRequestOutcome"]
