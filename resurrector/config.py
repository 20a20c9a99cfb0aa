"""Configuration loading for resurrector (.resurrector.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .tools.registry import Endpoint

CONFIG_FILENAME = ".resurrector.yml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ToolsConfig:
    """Where the MCP tool servers live and how long calls may take."""

    gateway_url: Optional[str] = None
    profile_id: Optional[str] = None
    token: Optional[str] = None
    endpoints: Dict[str, str] = field(default_factory=dict)
    lookup_timeout: float = 60.0
    generation_timeout: float = 120.0
    connect_timeout: float = 10.0


@dataclass
class RetryConfig:
    """Retry knobs for the tool client."""

    transient_retries: int = 1
    rate_limit_attempts: int = 3
    base_delay: float = 10.0
    max_delay: float = 60.0


@dataclass
class ServiceConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class GitHubConfig:
    token: Optional[str] = None


@dataclass
class ResurrectorConfig:
    """Represents the settings defined in .resurrector.yml plus environment overrides."""

    root: Optional[Path] = None
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)


def load_config(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ResurrectorConfig:
    """Load configuration from disk, then apply environment overrides.

    A missing file yields defaults. ``environ`` defaults to ``os.environ``.
    """
    env = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path or Path.cwd())
    config = ResurrectorConfig(root=config_file.parent)

    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")
        _apply_file(config, data)

    _apply_environment(config, env)
    return config


def _apply_file(config: ResurrectorConfig, data: Dict[str, Any]) -> None:
    tools_data = _as_dict(data.get("tools"))
    if tools_data:
        tools = config.tools
        tools.gateway_url = _as_str(tools_data.get("gateway_url")) or tools.gateway_url
        tools.profile_id = _as_str(tools_data.get("profile_id")) or tools.profile_id
        tools.token = _as_str(tools_data.get("token")) or tools.token
        for name, url in _as_dict(tools_data.get("endpoints")).items():
            endpoint = _endpoint_name(str(name))
            if endpoint is None:
                raise ConfigError(f"Unknown tool endpoint in {CONFIG_FILENAME}: {name}")
            if _as_str(url):
                tools.endpoints[endpoint] = str(url)
        tools.lookup_timeout = _positive(tools_data, "lookup_timeout", tools.lookup_timeout)
        tools.generation_timeout = _positive(
            tools_data, "generation_timeout", tools.generation_timeout
        )
        tools.connect_timeout = _positive(tools_data, "connect_timeout", tools.connect_timeout)

    retry_data = _as_dict(data.get("retry"))
    if retry_data:
        retry = config.retry
        transient = _as_int(retry_data.get("transient_retries"))
        if transient is not None:
            retry.transient_retries = max(0, transient)
        attempts = _as_int(retry_data.get("rate_limit_attempts"))
        if attempts is not None:
            retry.rate_limit_attempts = max(0, attempts)
        retry.base_delay = _positive(retry_data, "base_delay", retry.base_delay)
        retry.max_delay = _positive(retry_data, "max_delay", retry.max_delay)

    service_data = _as_dict(data.get("service"))
    if service_data:
        config.service.host = _as_str(service_data.get("host")) or config.service.host
        port = _as_int(service_data.get("port"))
        if port is not None:
            config.service.port = port

    github_data = _as_dict(data.get("github"))
    if github_data:
        config.github.token = _as_str(github_data.get("token")) or config.github.token


def _apply_environment(config: ResurrectorConfig, env: Mapping[str, str]) -> None:
    tools = config.tools
    tools.gateway_url = _env(env, "RESURRECTOR_GATEWAY_URL", "ARCHESTRA_URL") or tools.gateway_url
    tools.profile_id = (
        _env(env, "RESURRECTOR_PROFILE_ID", "ARCHESTRA_PROFILE_ID") or tools.profile_id
    )
    tools.token = _env(env, "RESURRECTOR_TOKEN", "ARCHESTRA_TOKEN") or tools.token
    for endpoint in Endpoint:
        variable = f"RESURRECTOR_{endpoint.name}_URL"
        value = _env(env, variable)
        if value:
            tools.endpoints[endpoint.value] = value
    config.github.token = _env(env, "GITHUB_TOKEN") or config.github.token
    port = _as_int(_env(env, "PORT"))
    if port is not None:
        config.service.port = port


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _endpoint_name(name: str) -> Optional[str]:
    normalised = name.strip().lower().replace("_", "-")
    for endpoint in Endpoint:
        if endpoint.value == normalised:
            return endpoint.value
    return None


def _env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value and value.strip():
            return value.strip()
    return None


def _positive(data: Dict[str, Any], key: str, default: float) -> float:
    value = _as_float(data.get(key))
    if value is None:
        return default
    if value <= 0:
        raise ConfigError(f"{key} must be a positive number")
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "GitHubConfig",
    "ResurrectorConfig",
    "RetryConfig",
    "ServiceConfig",
    "ToolsConfig",
    "load_config",
]
