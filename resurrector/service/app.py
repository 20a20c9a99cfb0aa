"""FastAPI application entrypoint for resurrector service mode."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncIterator, Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import ResurrectorConfig, load_config
from ..errors import InvalidRequestError, QuotaExceededError, RateLimitError
from ..github import GitHubPublisher, PublishError, is_repository_url
from ..logging import get_logger
from ..models import GenerationRequest, ProgressEvent, Stage, Status
from ..orchestrator import DEFAULT_ENHANCEMENT, Orchestrator
from ..tools import ToolClient

_logger = get_logger("service")


class GenerateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_url: Optional[str] = Field(default=None, alias="repoUrl")
    user_prompt: Optional[str] = Field(default=None, alias="userPrompt")
    style: Optional[str] = None


class ImproveBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    readme: Optional[str] = None
    suggestions: Optional[str | List[str]] = None
    custom_prompt: Optional[str] = Field(default=None, alias="customPrompt")


class CreatePullRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_url: Optional[str] = Field(default=None, alias="repoUrl")
    readme: Optional[str] = None
    github_token: Optional[str] = Field(default=None, alias="githubToken")


class HealthResponse(BaseModel):
    status: str
    timestamp: str


def combine_suggestions(suggestions: str | List[str] | None, custom_prompt: str | None) -> str:
    """Merge caller suggestions and free-form instructions into one enhancement brief."""
    if isinstance(suggestions, list):
        suggestions = ", ".join(item.strip() for item in suggestions if item and item.strip())
    combined = (suggestions or "").strip() or DEFAULT_ENHANCEMENT
    if custom_prompt and custom_prompt.strip():
        combined += f"\n\nUser's additional instructions: {custom_prompt.strip()}"
    return combined


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] | None = None,
    *,
    tool_client: ToolClient | None = None,
    publisher_factory: Callable[[str], GitHubPublisher] = GitHubPublisher,
    config: ResurrectorConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application exposing resurrector operations.

    Every request shares one tool client, so MCP connections are reused across
    runs; it is closed when the application shuts down.
    """
    settings = config or load_config()
    shared_client = tool_client
    if orchestrator_factory is None:
        shared_client = shared_client or ToolClient.from_config(settings)
        client = shared_client

        def orchestrator_factory() -> Orchestrator:
            return Orchestrator(client, config=settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if shared_client is not None:
            await shared_client.cleanup()
            _logger.info("Closed tool connections")

    app = FastAPI(title="README Resurrector", version="1.0.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", timestamp=datetime.now(UTC).isoformat())

    @app.post("/api/generate")
    async def generate(payload: GenerateBody, request: Request) -> Any:
        try:
            generation = GenerationRequest.from_input(
                payload.repo_url, user_prompt=payload.user_prompt, style=payload.style
            )
        except InvalidRequestError as exc:
            return _error_response(exc)

        orchestrator = orchestrator_factory()
        if "text/event-stream" in request.headers.get("accept", ""):
            return StreamingResponse(
                _event_stream(orchestrator, generation),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            )

        try:
            result = await orchestrator.generate(generation)
        except Exception as exc:
            _logger.error("Generate failed for %s: %s", generation.repository_url, exc)
            return _error_response(exc)
        return result.to_dict()

    @app.post("/api/generate/improve")
    async def improve(payload: ImproveBody) -> Any:
        if not payload.readme or not payload.readme.strip():
            return JSONResponse(status_code=400, content={"error": "Missing readme content"})
        suggestions = combine_suggestions(payload.suggestions, payload.custom_prompt)
        try:
            result = await orchestrator_factory().improve(payload.readme, suggestions)
        except Exception as exc:
            _logger.error("Improve failed: %s", exc)
            return _error_response(exc)
        return result.to_dict()

    @app.post("/api/generate/create-pr")
    async def create_pr(payload: CreatePullRequestBody) -> Any:
        if not payload.repo_url or not payload.readme:
            return JSONResponse(
                status_code=400, content={"error": "Missing repoUrl or readme content"}
            )
        if not is_repository_url(payload.repo_url):
            return JSONResponse(status_code=400, content={"error": "Invalid GitHub URL"})
        token = payload.github_token or settings.github.token
        if not token:
            return JSONResponse(
                status_code=400,
                content={"error": "GitHub token required. Provide a token with repo write access."},
            )
        try:
            outcome = await publisher_factory(token).publish_readme(payload.repo_url, payload.readme)
        except PublishError as exc:
            _logger.error("Create PR failed for %s: %s", payload.repo_url, exc)
            return JSONResponse(status_code=500, content={"error": str(exc)})
        return outcome.to_dict()

    return app


async def _event_stream(orchestrator: Orchestrator, request: GenerationRequest) -> AsyncIterator[str]:
    yield format_sse(
        "progress",
        ProgressEvent(Stage.ANALYSIS, Status.RUNNING, "Initializing agents...").to_dict(),
    )
    try:
        async for item in orchestrator.stream(request):
            if isinstance(item, ProgressEvent):
                yield format_sse("progress", item.to_dict())
            else:
                yield format_sse("result", item.to_dict())
    except Exception as exc:
        _logger.error("Streaming generate failed for %s: %s", request.repository_url, exc)
        yield format_sse("error", {"message": str(exc) or "Internal server error"})


def _error_response(exc: BaseException) -> JSONResponse:
    message = str(exc) or "Internal server error"
    return JSONResponse(status_code=_status_for(exc), content={"error": message})


def _status_for(exc: BaseException) -> int:
    if isinstance(exc, InvalidRequestError):
        return 400
    cause: BaseException | None = exc
    while cause is not None:
        if isinstance(cause, (QuotaExceededError, RateLimitError)):
            return 429
        cause = cause.__cause__
    return 500


def run_service(
    host: str | None = None, port: int | None = None, *, config: ResurrectorConfig | None = None
) -> None:  # pragma: no cover - integration path
    import uvicorn

    settings = config or load_config()
    app = create_app(config=settings)
    uvicorn.run(app, host=host or settings.service.host, port=port or settings.service.port)


__all__ = ["combine_suggestions", "create_app", "format_sse", "run_service"]
