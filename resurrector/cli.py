"""CLI entrypoints for resurrector commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Awaitable, TypeVar

from .config import ConfigError, load_config
from .diff import change_summary, render_diff
from .errors import InvalidRequestError, ResurrectorError
from .logging import LOG_LEVEL_ENV, configure_logging, get_logger
from .models import GenerationRequest, ProgressEvent, Status, Style
from .orchestrator import DEFAULT_ENHANCEMENT, Orchestrator

T = TypeVar("T")

_logger = get_logger("cli")


def _add_verbose_option(parser: argparse.ArgumentParser, *, subcommand: bool = False) -> None:
    # Subcommands must not reset a --verbose given before the command name.
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if subcommand else False,
        help=f"Log at DEBUG, including MCP transport traffic (overrides {LOG_LEVEL_ENV}).",
    )


def _add_output_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Write the README to this file instead of standard output.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resurrector",
        description="Resurrect stale READMEs by orchestrating MCP tool agents.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to .resurrector.yml or its directory (defaults to the current directory).",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate a README for a GitHub repository.",
    )
    _add_verbose_option(generate_parser, subcommand=True)
    generate_parser.add_argument("url", help="GitHub repository URL.")
    generate_parser.add_argument(
        "--style",
        choices=[style.value for style in Style],
        default=Style.STANDARD.value,
        help="README verbosity preset.",
    )
    generate_parser.add_argument(
        "--prompt",
        default=None,
        help="Extra instructions passed to the generation tool.",
    )
    _add_output_option(generate_parser)
    generate_parser.add_argument(
        "--diff",
        action="store_true",
        help="Print a unified diff against the repository's existing README.",
    )

    improve_parser = subparsers.add_parser(
        "improve",
        help="Enhance an existing README file and re-score it.",
    )
    _add_verbose_option(improve_parser, subcommand=True)
    improve_parser.add_argument("path", type=Path, help="README file to improve.")
    improve_parser.add_argument(
        "--suggestions",
        default=DEFAULT_ENHANCEMENT,
        help="Comma-separated improvements to request.",
    )
    _add_output_option(improve_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, subcommand=True)
    serve_parser.add_argument("--host", default=None, help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for resurrector commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.command == "serve":
        from .service import run_service

        run_service(args.host, args.port, config=config)
        return

    orchestrator = Orchestrator(config=config)

    if args.command == "generate":
        try:
            request = GenerationRequest.from_input(args.url, user_prompt=args.prompt, style=args.style)
        except InvalidRequestError as exc:
            parser.exit(1, f"{exc}: {args.url}\n")
        try:
            result = _run(orchestrator, orchestrator.generate(request, _log_progress))
        except ResurrectorError as exc:
            parser.exit(1, f"resurrector generate failed: {exc}\nRun with --verbose for more details.\n")
        if result.degraded:
            _logger.warning("Generation degraded; wrote a metadata-only README")
        _logger.info("Quality score: %d", result.quality.score)
        _emit(result.readme, args.output)
        if args.diff:
            if result.original_readme:
                print(render_diff(result.original_readme, result.readme) or "(no diff)")
                _logger.info("README changes: %s", change_summary(result.original_readme, result.readme))
            else:
                print("(no existing README to compare against)")
    elif args.command == "improve":
        try:
            readme = args.path.read_text(encoding="utf-8")
        except OSError as exc:
            parser.exit(1, f"Unable to read {args.path}: {exc}\n")
        try:
            improved = _run(orchestrator, orchestrator.improve(readme, args.suggestions, _log_progress))
        except ResurrectorError as exc:
            parser.exit(1, f"resurrector improve failed: {exc}\nRun with --verbose for more details.\n")
        _logger.info("Quality score: %d", improved.quality.score)
        _emit(improved.readme, args.output)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run(orchestrator: Orchestrator, call: Awaitable[T]) -> T:
    async def runner() -> T:
        try:
            return await call
        finally:
            await orchestrator.tool_client.cleanup()

    return asyncio.run(runner())


def _log_progress(event: ProgressEvent) -> None:
    message = event.message or event.status.value
    if event.status is Status.ERROR:
        _logger.error("[%s] %s", event.stage.value, message)
    else:
        _logger.info("[%s] %s", event.stage.value, message)


def _emit(readme: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(readme if readme.endswith("\n") else readme + "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(readme, encoding="utf-8")
    print(f"README written to {_display_path(output)}")


def _display_path(path: Path) -> str:
    resolved = path.resolve()
    cwd = Path.cwd()
    return str(resolved.relative_to(cwd)) if resolved.is_relative_to(cwd) else str(resolved)


if __name__ == "__main__":
    main(sys.argv[1:])
