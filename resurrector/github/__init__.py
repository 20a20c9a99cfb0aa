"""GitHub helpers: repository URL parsing and pull-request publishing."""

from .publisher import GitHubPublisher, PublishError, PullRequestOutcome
from .urls import RepositoryRef, is_repository_url, parse_repository_url, require_repository

__all__ = [
    "GitHubPublisher",
    "PublishError",
    "PullRequestOutcome",
    "RepositoryRef",
    "is_repository_url",
    "parse_repository_url",
    "require_repository",
]
