"""Pipeline orchestration: analysis, insights, reading, generation and quality."""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from .cancellation import CancellationToken
from .config import ResurrectorConfig, load_config
from .decoding import decode_json, strip_code_fence
from .errors import DecodeError, EmptyResponseError, PipelineError, RunCancelledError
from .failsafe import build_fallback_readme
from .logging import get_logger, repository_context
from .models import (
    COMMAND_CATEGORIES,
    GenerationRequest,
    GenerationResult,
    ImproveResult,
    PipelineContext,
    ProgressEvent,
    RepositoryMetadata,
    Stage,
    VerifiedCommands,
)
from .progress import ProgressChannel, ProgressSink, ProgressTracker
from .quality import QualityReport
from .tools import Tool, ToolClient

CHUNK_TOKEN_BUDGET = 15000
QUALITY_THRESHOLD = 80
DEFAULT_ENHANCEMENT = "Improve overall quality, add missing sections, enhance formatting"

_README_NAMES = {"readme", "readme.md"}
_READ_ERROR = re.compile(r"^\s*Error(?: reading file)?:")


class Orchestrator:
    """Runs the README pipeline against the remote tools.

    One ``Orchestrator`` may serve many runs; each run gets its own
    ``PipelineContext`` and progress tracker.
    """

    def __init__(
        self,
        tool_client: ToolClient | None = None,
        *,
        config: ResurrectorConfig | None = None,
    ) -> None:
        if tool_client is None:
            tool_client = ToolClient.from_config(config or load_config())
        self.tool_client = tool_client
        self.logger = get_logger("orchestrator")

    async def generate(
        self,
        request: GenerationRequest,
        on_progress: ProgressSink | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationResult:
        """Run the full pipeline for ``request``.

        Returns a degraded result built from metadata alone when a step fails
        after metadata was fetched. Raises ``PipelineError`` when nothing was
        collected, and ``RunCancelledError`` when ``cancel_token`` fires.
        """
        with repository_context(request.repository_url):
            return await self._generate(request, on_progress, cancel_token)

    async def _generate(
        self,
        request: GenerationRequest,
        on_progress: ProgressSink | None,
        cancel_token: CancellationToken | None,
    ) -> GenerationResult:
        tracker = ProgressTracker(on_progress)
        context = PipelineContext(request=request)
        self.logger.info(
            "Starting generation for %s (style=%s)", request.repository_url, request.style.value
        )

        stage = Stage.ANALYSIS
        try:
            await self._analyze(context, tracker, cancel_token)
            stage = Stage.INSIGHTS
            await self._gather_insights(context, tracker, cancel_token)
            stage = Stage.READING
            await self._read(context, tracker, cancel_token)
            stage = Stage.GENERATION
            draft = await self._draft(context, tracker, cancel_token)
            stage = Stage.QUALITY
            report = await self._assess(context, draft, tracker, cancel_token)
        except RunCancelledError as exc:
            self.logger.warning("Generation for %s cancelled: %s", request.repository_url, exc)
            tracker.error(Stage.ERROR, str(exc))
            raise
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            if context.repository is None:
                self._log_exception("Generation failed before repository metadata was available", exc)
                tracker.error(Stage.ERROR, message)
                raise PipelineError(message, stage=stage.value) from exc
            self._log_exception(f"{stage.value.capitalize()} stage failed", exc)
            tracker.error(stage, f"{message}. Falling back to a metadata-only README.")
            return self._fallback(context, context.repository, message)

        self.logger.info(
            "Generated README for %s (quality %d)", request.repository_url, report.score
        )
        return GenerationResult(
            readme=context.final_readme or draft,
            metadata=context.metadata or {},
            quality=report,
            original_readme=context.original_readme or "",
            verified_commands=context.verified_commands,
        )

    async def improve(
        self,
        readme: str,
        suggestions: str | None = None,
        on_progress: ProgressSink | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ImproveResult:
        """Enhance ``readme`` once with ``suggestions`` and score the result."""
        tracker = ProgressTracker(on_progress)
        try:
            tracker.running(Stage.QUALITY, "Enhancing content...")
            enhanced = await self._enhance(readme, suggestions or DEFAULT_ENHANCEMENT, cancel_token)
            tracker.running(Stage.QUALITY, "Validating content...")
            report = await self._score(enhanced, cancel_token)
        except Exception as exc:
            self._log_exception("README improvement failed", exc)
            tracker.error(Stage.QUALITY, str(exc) or exc.__class__.__name__)
            raise
        tracker.complete(Stage.QUALITY, f"Quality Score: {report.score}")
        return ImproveResult(readme=enhanced, quality=report)

    async def stream(
        self,
        request: GenerationRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[ProgressEvent | GenerationResult]:
        """Yield progress events as they happen, then the final result."""
        channel = ProgressChannel()

        async def run() -> GenerationResult:
            try:
                return await self.generate(request, channel, cancel_token=cancel_token)
            finally:
                channel.close()

        task = asyncio.ensure_future(run())
        try:
            async for event in channel:
                yield event
            yield await task
        finally:
            if not task.done():
                task.cancel()

    async def _analyze(
        self,
        context: PipelineContext,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
    ) -> None:
        repo_url = context.request.repository_url
        tracker.running(Stage.ANALYSIS, "Connecting to repository...")
        metadata = await self._call_json(Tool.GET_REPO_METADATA, {"repoUrl": repo_url}, cancel_token)
        if not isinstance(metadata, Mapping):
            raise DecodeError("Repository metadata must be a JSON object")
        context.metadata = dict(metadata)
        context.repository = RepositoryMetadata.from_payload(metadata, repository_url=repo_url)

        tracker.running(Stage.ANALYSIS, "Analyzing structure...")
        analysis = await self._call_json(Tool.ANALYZE_REPOSITORY, {"repoUrl": repo_url}, cancel_token)
        if not isinstance(analysis, Mapping):
            raise DecodeError("Repository analysis must be a JSON object")
        context.analysis = dict(analysis)
        tree = analysis.get("tree") or analysis.get("fileTree") or []
        languages = analysis.get("languages") or {}
        tracker.running(
            Stage.ANALYSIS,
            f"Analyzing structure ({len(tree)} files, {len(languages)} languages)...",
        )

        tracker.running(Stage.ANALYSIS, f"Identifying key files among {len(tree)} files...")
        ranked = await self._call_json(Tool.IDENTIFY_IMPORTANT_FILES, {"fileTree": tree}, cancel_token)
        context.important_files = _as_paths(ranked)
        tracker.complete(
            Stage.ANALYSIS, f"Repository analyzed ({len(context.important_files)} key files)"
        )

    async def _gather_insights(
        self,
        context: PipelineContext,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
    ) -> None:
        tracker.running(Stage.INSIGHTS, "Gathering community insights...")
        try:
            insights = await self._call_json(
                Tool.GET_COMMUNITY_INSIGHTS,
                {"repoUrl": context.request.repository_url},
                cancel_token,
            )
        except RunCancelledError:
            raise
        except Exception as exc:
            self.logger.warning("Community insights unavailable: %s", exc)
            tracker.complete(Stage.INSIGHTS, "Community insights unavailable, continuing without them")
            return
        if isinstance(insights, Mapping):
            context.insights = dict(insights)
        else:
            self.logger.warning("Ignoring community insights of type %s", type(insights).__name__)
        tracker.complete(Stage.INSIGHTS, "Community insights collected")

    async def _read(
        self,
        context: PipelineContext,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
    ) -> None:
        paths = context.important_files
        tracker.running(Stage.READING, f"Reading {len(paths)} files...")
        raw_files = await self._call_json(
            Tool.READ_FILES,
            {"repoUrl": context.request.repository_url, "filePaths": paths},
            cancel_token,
        )
        files = _order_files(_as_files(raw_files), paths)
        context.files = files
        context.original_readme = _find_prior_readme(files)
        if context.original_readme:
            self.logger.debug("Found an existing README (%d characters)", len(context.original_readme))

        tracker.running(Stage.READING, "Extracting code signatures...")
        signatures = await self._call_json(Tool.EXTRACT_SIGNATURES, {"files": files}, cancel_token)
        context.signatures = signatures if isinstance(signatures, list) else [signatures]

        tracker.running(Stage.READING, "Detecting build and run commands...")
        try:
            commands = await self._call_json(Tool.EXTRACT_COMMANDS, {"files": files}, cancel_token)
        except RunCancelledError:
            raise
        except Exception as exc:
            self.logger.warning("Command extraction failed; continuing without verified commands: %s", exc)
        else:
            context.verified_commands = _as_commands(commands)

        tracker.running(Stage.READING, "Optimizing context...")
        chunks = await self._call_json(
            Tool.SMART_CHUNK, {"files": files, "maxTokens": CHUNK_TOKEN_BUDGET}, cancel_token
        )
        context.chunks = chunks if isinstance(chunks, list) else [chunks]
        tracker.complete(
            Stage.READING, f"Code processed ({len(files)} files, {len(context.chunks)} chunks)"
        )

    async def _draft(
        self,
        context: PipelineContext,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
    ) -> str:
        request = context.request
        tracker.running(Stage.GENERATION, "Drafting documentation...")
        arguments: Dict[str, Any] = {
            "metadata": context.metadata,
            "analysis": context.analysis,
            "codeSummaries": context.chunks,
            "signatures": context.signatures,
            "insights": context.insights,
            "verifiedCommands": context.verified_commands,
            "style": request.style.value,
            "maxTokens": request.style.token_limit,
        }
        if request.user_prompt:
            arguments["userPrompt"] = request.user_prompt
        text = await self.tool_client.call_tool(
            Tool.GENERATE_README, arguments, cancel_token=cancel_token
        )
        readme = strip_code_fence(text)
        if not readme:
            raise EmptyResponseError(
                "Tool generate_readme returned an empty README", tool=Tool.GENERATE_README.tool_name
            )
        context.readme = readme
        tracker.complete(Stage.GENERATION, "Draft generated")
        return readme

    async def _assess(
        self,
        context: PipelineContext,
        readme: str,
        tracker: ProgressTracker,
        cancel_token: CancellationToken | None,
    ) -> QualityReport:
        tracker.running(Stage.QUALITY, "Validating content...")
        report = await self._score(readme, cancel_token)
        context.quality = report
        if report.score < QUALITY_THRESHOLD:
            tracker.running(Stage.QUALITY, f"Enhancing content (score {report.score})...")
            suggestions = report.suggestion_text() or DEFAULT_ENHANCEMENT
            context.enhanced_readme = await self._enhance(readme, suggestions, cancel_token)
        tracker.complete(Stage.QUALITY, f"Quality Score: {report.score}")
        return report

    async def _score(self, readme: str, cancel_token: CancellationToken | None) -> QualityReport:
        payload = await self._call_json(Tool.VALIDATE_README, {"readme": readme}, cancel_token)
        return QualityReport.from_payload(payload)

    async def _enhance(
        self, readme: str, suggestions: str, cancel_token: CancellationToken | None
    ) -> str:
        text = await self.tool_client.call_tool(
            Tool.ENHANCE_README,
            {"readme": readme, "suggestions": suggestions},
            cancel_token=cancel_token,
        )
        enhanced = strip_code_fence(text)
        if not enhanced:
            raise EmptyResponseError(
                "Tool enhance_readme returned an empty README", tool=Tool.ENHANCE_README.tool_name
            )
        return enhanced

    async def _call_json(
        self,
        tool: Tool,
        arguments: Dict[str, Any],
        cancel_token: CancellationToken | None,
    ) -> Any:
        text = await self.tool_client.call_tool(tool, arguments, cancel_token=cancel_token)
        decoded = decode_json(text)
        if decoded.repaired:
            self.logger.warning("Repaired truncated JSON returned by %s", tool.tool_name)
        return decoded.value

    def _fallback(
        self, context: PipelineContext, repository: RepositoryMetadata, reason: str
    ) -> GenerationResult:
        context.fallback = True
        readme = build_fallback_readme(
            repository,
            context.analysis,
            context.verified_commands,
            reason=reason,
        )
        self.logger.warning("Returning metadata-only README for %s", context.request.repository_url)
        return GenerationResult(
            readme=readme,
            metadata=context.metadata or {},
            quality=QualityReport.fallback(),
            original_readme=context.original_readme or "",
            verified_commands=context.verified_commands,
            degraded=True,
        )

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


def _as_paths(raw: Any) -> List[str]:
    if isinstance(raw, Mapping):
        raw = raw.get("files") or raw.get("paths") or raw.get("importantFiles") or []
    if not isinstance(raw, list):
        raise DecodeError("Important files must be a JSON array")
    paths: List[str] = []
    for item in raw:
        path = item.get("path") if isinstance(item, Mapping) else item
        if isinstance(path, str) and path.strip() and path.strip() not in paths:
            paths.append(path.strip())
    return paths


def _as_files(raw: Any) -> List[Dict[str, str]]:
    if isinstance(raw, Mapping) and "files" in raw:
        raw = raw["files"]
    if isinstance(raw, Mapping):
        return [{"path": str(path), "content": str(content)} for path, content in raw.items()]
    if not isinstance(raw, list):
        raise DecodeError("File contents must be a JSON array")
    files: List[Dict[str, str]] = []
    for item in raw:
        if isinstance(item, Mapping) and item.get("path"):
            content = item.get("content")
            files.append({"path": str(item["path"]), "content": "" if content is None else str(content)})
    return files


def _order_files(files: List[Dict[str, str]], ranked: Sequence[str]) -> List[Dict[str, str]]:
    """Return ``files`` in ranked path order; unranked files keep their order at the end."""
    by_path = {entry["path"]: entry for entry in files}
    ordered = [by_path[path] for path in ranked if path in by_path]
    ranked_set = set(ranked)
    ordered.extend(entry for entry in files if entry["path"] not in ranked_set)
    return ordered


def _find_prior_readme(files: Sequence[Mapping[str, str]]) -> Optional[str]:
    for entry in files:
        name = posixpath.basename(entry.get("path", "")).lower()
        content = entry.get("content") or ""
        if name in _README_NAMES and content.strip() and not _READ_ERROR.match(content):
            return content
    return None


def _as_commands(raw: Any) -> VerifiedCommands:
    if isinstance(raw, Mapping) and isinstance(raw.get("commands"), (list, Mapping)):
        raw = raw["commands"]
    commands: VerifiedCommands = {}

    def add(category: Any, command: Any) -> None:
        if isinstance(command, Mapping):
            command = command.get("command") or command.get("cmd")
        if not isinstance(command, str) or not command.strip():
            return
        key = str(category or "other").strip().lower()
        if key not in COMMAND_CATEGORIES:
            key = "other"
        bucket = commands.setdefault(key, [])
        if command.strip() not in bucket:
            bucket.append(command.strip())

    if isinstance(raw, Mapping):
        for category, value in raw.items():
            for command in value if isinstance(value, list) else [value]:
                add(category, command)
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, Mapping):
                add(item.get("category") or item.get("type"), item)
            else:
                add("other", item)
    return commands


__all__ = [
    "CHUNK_TOKEN_BUDGET",
    "DEFAULT_ENHANCEMENT",
    "QUALITY_THRESHOLD",
    "Orchestrator",
]
