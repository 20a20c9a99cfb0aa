"""Tests for resurrector.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from resurrector.config import CONFIG_FILENAME, ConfigError, ResurrectorConfig, load_config
from resurrector.tools import ToolClass, ToolClient


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert isinstance(config, ResurrectorConfig)
    assert config.root == tmp_path.resolve()
    assert config.tools.gateway_url is None
    assert config.tools.endpoints == {}
    assert config.tools.lookup_timeout == 60.0
    assert config.tools.generation_timeout == 120.0
    assert config.retry.rate_limit_attempts == 3
    assert config.service.port == 8080
    assert config.github.token is None


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / CONFIG_FILENAME
    config_file.write_text(
        """
tools:
  gateway_url: "http://gateway.internal:9000"
  profile_id: "readme-agents"
  endpoints:
    repo_analyzer: "http://analyzer:3002"
    doc-generator: "http://docs:3004"
  lookup_timeout: 45
  generation_timeout: 180
retry:
  transient_retries: 2
  rate_limit_attempts: 5
  base_delay: 5
service:
  host: "127.0.0.1"
  port: 9090
github:
  token: "ghp_from_file"
""",
        encoding="utf-8",
    )

    config = load_config(config_file, environ={})

    assert config.tools.gateway_url == "http://gateway.internal:9000"
    assert config.tools.profile_id == "readme-agents"
    assert config.tools.endpoints == {
        "repo-analyzer": "http://analyzer:3002",
        "doc-generator": "http://docs:3004",
    }
    assert config.tools.lookup_timeout == 45.0
    assert config.tools.generation_timeout == 180.0
    assert config.retry.transient_retries == 2
    assert config.retry.rate_limit_attempts == 5
    assert config.retry.base_delay == 5.0
    assert config.retry.max_delay == 60.0
    assert config.service.host == "127.0.0.1"
    assert config.service.port == 9090
    assert config.github.token == "ghp_from_file"


def test_environment_overrides_file(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(
        "tools:\n  profile_id: from-file\nservice:\n  port: 9090\n", encoding="utf-8"
    )

    config = load_config(
        tmp_path,
        environ={
            "ARCHESTRA_URL": "http://localhost:9000",
            "RESURRECTOR_PROFILE_ID": "from-env",
            "ARCHESTRA_PROFILE_ID": "ignored",
            "ARCHESTRA_TOKEN": "secret",
            "RESURRECTOR_CODE_READER_URL": "http://reader:3003",
            "GITHUB_TOKEN": "ghp_env",
            "PORT": "8181",
        },
    )

    assert config.tools.gateway_url == "http://localhost:9000"
    assert config.tools.profile_id == "from-env"
    assert config.tools.token == "secret"
    assert config.tools.endpoints == {"code-reader": "http://reader:3003"}
    assert config.github.token == "ghp_env"
    assert config.service.port == 8181


def test_blank_environment_values_are_ignored(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={"GITHUB_TOKEN": "  ", "PORT": "not-a-port"})

    assert config.github.token is None
    assert config.service.port == 8080


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("tools: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(tmp_path, environ={})


def test_non_mapping_root_raises(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path, environ={})


def test_unknown_endpoint_raises(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(
        "tools:\n  endpoints:\n    image-painter: http://paint:1234\n", encoding="utf-8"
    )

    with pytest.raises(ConfigError, match="image-painter"):
        load_config(tmp_path, environ={})


def test_non_positive_timeout_raises(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("tools:\n  lookup_timeout: 0\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="lookup_timeout"):
        load_config(tmp_path, environ={})


def test_tool_client_from_config_applies_settings(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(
        "tools:\n  generation_timeout: 240\nretry:\n  rate_limit_attempts: 1\n", encoding="utf-8"
    )
    config = load_config(tmp_path, environ={})

    client = ToolClient.from_config(config)

    assert client.timeouts[ToolClass.GENERATION] == 240.0
    assert client.timeouts[ToolClass.LOOKUP] == 60.0
    assert client.policy.rate_limit_attempts == 1
