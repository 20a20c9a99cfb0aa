"""Logging for resurrector commands and the HTTP service.

Every record handled by the resurrector handlers carries a ``repository``
attribute naming the repository whose pipeline emitted it, so interleaved
runs in the service can be told apart. Transport libraries (httpx and the
MCP SDK) log each request at INFO; they stay at WARNING unless debugging.
"""

from __future__ import annotations

import contextvars
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Mapping, Optional

_LOGGER_NAME = "resurrector"
LOG_LEVEL_ENV = "RESURRECTOR_LOG_LEVEL"
TRANSPORT_LOGGERS = ("httpx", "httpcore", "mcp")
NO_REPOSITORY = "-"

_repository: contextvars.ContextVar[str] = contextvars.ContextVar(
    "resurrector_repository", default=NO_REPOSITORY
)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the resurrector hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def repository_label(repository_url: str) -> str:
    """Shorten ``https://github.com/owner/name`` to ``owner/name``."""
    label = repository_url.strip().rstrip("/")
    for prefix in ("https://", "http://", "www.", "github.com/"):
        if label.lower().startswith(prefix):
            label = label[len(prefix):]
    if label.endswith(".git"):
        label = label[:-4]
    return label or NO_REPOSITORY


@contextmanager
def repository_context(repository_url: str) -> Iterator[str]:
    """Tag log records emitted inside the block with the repository."""
    label = repository_label(repository_url)
    token = _repository.set(label)
    try:
        yield label
    finally:
        _repository.reset(token)


class RepositoryFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "repository"):
            record.repository = _repository.get()
        return True


class ConsoleFormatter(logging.Formatter):
    """``[resurrector owner/name] LEVEL message``, dropping the tag outside a run."""

    def __init__(self) -> None:
        super().__init__("%(message)s")

    def format(self, record: logging.LogRecord) -> str:
        repository = getattr(record, "repository", NO_REPOSITORY)
        prefix = _LOGGER_NAME if repository == NO_REPOSITORY else f"{_LOGGER_NAME} {repository}"
        return f"[{prefix}] {record.levelname} {super().format(record)}"


def resolve_level(*, verbose: bool = False, environ: Optional[Mapping[str, str]] = None) -> int:
    """``--verbose`` wins; otherwise ``RESURRECTOR_LOG_LEVEL`` if it names a level; else INFO."""
    if verbose:
        return logging.DEBUG
    env = os.environ if environ is None else environ
    name = env.get(LOG_LEVEL_ENV, "").strip().upper()
    if name:
        level = logging.getLevelName(name)
        if isinstance(level, int):
            return level
    return logging.INFO


def quiet_transport_loggers(level: int) -> None:
    threshold = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(threshold)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> logging.Logger:
    """Attach console and optional file handlers to the resurrector logger."""
    level = resolve_level(verbose=verbose, environ=environ)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    repository_filter = RepositoryFilter()
    console = logging.StreamHandler()
    console.setLevel(level)
    console.addFilter(repository_filter)
    console.setFormatter(ConsoleFormatter())
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(repository_filter)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(repository)s]: %(message)s")
        )
        logger.addHandler(file_handler)

    quiet_transport_loggers(level)
    return logger


__all__ = [
    "LOG_LEVEL_ENV",
    "configure_logging",
    "get_logger",
    "quiet_transport_loggers",
    "repository_context",
    "repository_label",
    "resolve_level",
]
