"""CLI behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from resurrector import cli
from resurrector.cli import _build_parser
from resurrector.errors import ToolClientError
from resurrector.orchestrator import DEFAULT_ENHANCEMENT, Orchestrator

REPO_URL = "https://github.com/acme/widget"


@pytest.fixture
def use_tool_client(monkeypatch: pytest.MonkeyPatch):
    """Route the CLI's orchestrator through a scripted tool client."""

    def install(client):
        monkeypatch.setattr(cli, "Orchestrator", lambda config=None: Orchestrator(client, config=config))
        return client

    return install


def test_cli_accepts_verbose_before_command() -> None:
    args = _build_parser().parse_args(["--verbose", "generate", REPO_URL])

    assert args.verbose is True
    assert args.command == "generate"


def test_cli_accepts_verbose_after_command() -> None:
    args = _build_parser().parse_args(["generate", REPO_URL, "--verbose"])

    assert args.verbose is True
    assert args.style == "standard"
    assert args.diff is False


def test_cli_rejects_unknown_style() -> None:
    with pytest.raises(SystemExit):
        _build_parser().parse_args(["generate", REPO_URL, "--style", "verbose"])


def test_cli_improve_defaults() -> None:
    args = _build_parser().parse_args(["improve", "README.md"])

    assert args.path == Path("README.md")
    assert args.suggestions == DEFAULT_ENHANCEMENT
    assert args.output is None


def test_cli_serve_options() -> None:
    args = _build_parser().parse_args(["serve", "--port", "9000"])

    assert args.port == 9000
    assert args.host is None


def test_generate_writes_readme(tmp_path: Path, use_tool_client, make_tool_client, capsys) -> None:
    client = use_tool_client(make_tool_client())
    output = tmp_path / "out" / "README.md"

    cli.main(
        ["--config", str(tmp_path), "generate", REPO_URL, "--style", "minimal", "--prompt", "Short", "-o", str(output)]
    )

    assert output.read_text(encoding="utf-8") == "# widget\n\nA drafted README."
    assert "README written to" in capsys.readouterr().out
    assert client.called("generate_readme")[0]["style"] == "minimal"
    assert client.called("generate_readme")[0]["userPrompt"] == "Short"
    assert client.cleaned_up is True


def test_generate_prints_diff_against_prior_readme(
    tmp_path: Path, use_tool_client, make_tool_client, capsys
) -> None:
    use_tool_client(
        make_tool_client(
            read_files=json.dumps([{"path": "README.md", "content": "# widget\n\nOld text."}])
        )
    )

    cli.main(["--config", str(tmp_path), "generate", REPO_URL, "--diff"])

    out = capsys.readouterr().out
    assert out.startswith("# widget\n\nA drafted README.\n")
    assert "--- README.md (original)" in out
    assert "-Old text." in out


def test_generate_diff_without_prior_readme(
    tmp_path: Path, use_tool_client, make_tool_client, capsys
) -> None:
    use_tool_client(make_tool_client())

    cli.main(["--config", str(tmp_path), "generate", REPO_URL, "--diff"])

    assert "(no existing README to compare against)" in capsys.readouterr().out


def test_generate_rejects_invalid_url(tmp_path: Path, use_tool_client, make_tool_client, capsys) -> None:
    client = use_tool_client(make_tool_client())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "generate", "https://example.com/widget"])

    assert excinfo.value.code == 1
    assert "Invalid GitHub URL" in capsys.readouterr().err
    assert client.calls == []


def test_generate_failure_exits_non_zero(tmp_path: Path, use_tool_client, make_tool_client, capsys) -> None:
    use_tool_client(make_tool_client(get_repo_metadata=ToolClientError("repository not found")))

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "generate", REPO_URL])

    assert excinfo.value.code == 1
    assert "resurrector generate failed: repository not found" in capsys.readouterr().err


def test_improve_rewrites_file(tmp_path: Path, use_tool_client, make_tool_client) -> None:
    client = use_tool_client(make_tool_client())
    source = tmp_path / "README.md"
    source.write_text("# widget\n", encoding="utf-8")
    output = tmp_path / "IMPROVED.md"

    cli.main(["--config", str(tmp_path), "improve", str(source), "--suggestions", "Add badges", "-o", str(output)])

    assert output.read_text(encoding="utf-8") == "# widget\n\nAn enhanced README."
    assert client.called("enhance_readme")[0] == {"readme": "# widget\n", "suggestions": "Add badges"}


def test_improve_missing_file_exits(tmp_path: Path, use_tool_client, make_tool_client) -> None:
    use_tool_client(make_tool_client())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "improve", str(tmp_path / "missing.md")])

    assert excinfo.value.code == 1


def test_bad_config_exits(tmp_path: Path) -> None:
    (tmp_path / ".resurrector.yml").write_text("tools: [broken\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "generate", REPO_URL])

    assert excinfo.value.code == 1
