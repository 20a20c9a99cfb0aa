"""Core data models shared across resurrector components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .github.urls import require_repository
from .quality import QualityReport


class Style(str, Enum):
    """README verbosity presets understood by the generation tool."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    DETAILED = "detailed"

    @classmethod
    def coerce(cls, value: "Style | str | None") -> "Style":
        """Return the matching style, falling back to ``standard`` for unknown values."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return cls.STANDARD

    @property
    def token_limit(self) -> int:
        return STYLE_TOKEN_LIMITS[self]


STYLE_TOKEN_LIMITS: Dict[Style, int] = {
    Style.MINIMAL: 2000,
    Style.STANDARD: 4000,
    Style.DETAILED: 6000,
}


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable input to a single generation run."""

    repository_url: str
    user_prompt: Optional[str] = None
    style: Style = Style.STANDARD

    @classmethod
    def from_input(
        cls,
        repository_url: Optional[str],
        *,
        user_prompt: Optional[str] = None,
        style: Optional[str] = None,
    ) -> "GenerationRequest":
        """Validate caller input and build a request.

        Raises ``InvalidRequestError`` when the URL does not point at a GitHub repository.
        """
        require_repository(repository_url)
        prompt = user_prompt.strip() if user_prompt else None
        return cls(
            repository_url=(repository_url or "").strip(),
            user_prompt=prompt or None,
            style=Style.coerce(style),
        )


class Stage(str, Enum):
    """Named pipeline phases, declared in execution order."""

    ANALYSIS = "analysis"
    INSIGHTS = "insights"
    READING = "reading"
    GENERATION = "generation"
    QUALITY = "quality"
    ERROR = "error"


PIPELINE_STAGES: tuple[Stage, ...] = (
    Stage.ANALYSIS,
    Stage.INSIGHTS,
    Stage.READING,
    Stage.GENERATION,
    Stage.QUALITY,
)


class Status(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress notification emitted by the orchestrator."""

    stage: Stage
    status: Status
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"step": self.stage.value, "status": self.status.value}
        if self.message is not None:
            payload["message"] = self.message
        return payload


@dataclass
class RepositoryMetadata:
    """Typed view over the metadata payload returned by the repository analyzer."""

    name: str
    description: Optional[str] = None
    stars: Optional[int] = None
    language: Optional[str] = None
    license: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    default_branch: Optional[str] = None
    updated_at: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], *, repository_url: Optional[str] = None
    ) -> "RepositoryMetadata":
        name = _first_str(payload, "name", "fullName", "full_name")
        if not name and repository_url:
            name = repository_url.rstrip("/").rsplit("/", 1)[-1]
        license_value = payload.get("license")
        if isinstance(license_value, Mapping):
            license_value = license_value.get("spdx_id") or license_value.get("name")
        license_name = str(license_value).strip() if license_value else None
        if license_name in {"None", "NOASSERTION", ""}:
            license_name = None
        topics = payload.get("topics")
        return cls(
            name=name or "Repository",
            description=_first_str(payload, "description"),
            stars=_first_int(payload, "stars", "starCount", "stargazers_count", "stargazersCount"),
            language=_first_str(payload, "language", "primaryLanguage", "primary_language"),
            license=license_name,
            topics=[str(topic) for topic in topics if topic] if isinstance(topics, list) else [],
            default_branch=_first_str(payload, "defaultBranch", "default_branch"),
            updated_at=_first_str(payload, "lastUpdated", "updatedAt", "updated_at", "pushedAt"),
            url=_first_str(payload, "url", "htmlUrl", "html_url") or repository_url,
        )


VerifiedCommands = Dict[str, List[str]]

COMMAND_CATEGORIES: tuple[str, ...] = ("install", "run", "test", "build", "lint", "other")


@dataclass
class PipelineContext:
    """Mutable accumulator for one generation run.

    Stages only ever fill fields in; nothing is rolled back, so the fallback path
    can read whatever was collected before a failure.
    """

    request: GenerationRequest
    metadata: Optional[Dict[str, Any]] = None
    repository: Optional[RepositoryMetadata] = None
    analysis: Optional[Dict[str, Any]] = None
    insights: Dict[str, Any] = field(default_factory=dict)
    important_files: List[str] = field(default_factory=list)
    files: List[Dict[str, str]] = field(default_factory=list)
    signatures: List[Any] = field(default_factory=list)
    verified_commands: VerifiedCommands = field(default_factory=dict)
    chunks: List[Any] = field(default_factory=list)
    readme: Optional[str] = None
    enhanced_readme: Optional[str] = None
    quality: Optional[QualityReport] = None
    original_readme: Optional[str] = None
    fallback: bool = False

    @property
    def final_readme(self) -> Optional[str]:
        return self.enhanced_readme or self.readme


@dataclass
class GenerationResult:
    """Outcome of a generation run, full or degraded."""

    readme: str
    metadata: Dict[str, Any]
    quality: QualityReport
    original_readme: str = ""
    verified_commands: VerifiedCommands = field(default_factory=dict)
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "readme": self.readme,
            "metadata": self.metadata,
            "quality": self.quality.to_dict(),
            "originalReadme": self.original_readme,
            "verifiedCommands": self.verified_commands,
            "degraded": self.degraded,
        }


@dataclass
class ImproveResult:
    readme: str
    quality: QualityReport

    def to_dict(self) -> Dict[str, Any]:
        return {"readme": self.readme, "quality": self.quality.to_dict()}


def _first_str(payload: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first_int(payload: Mapping[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
    return None


__all__ = [
    "COMMAND_CATEGORIES",
    "GenerationRequest",
    "GenerationResult",
    "ImproveResult",
    "PIPELINE_STAGES",
    "PipelineContext",
    "ProgressEvent",
    "RepositoryMetadata",
    "STYLE_TOKEN_LIMITS",
    "Stage",
    "Status",
    "Style",
    "VerifiedCommands",
]
