from __future__ import annotations

from pathlib import Path

import allure
from click.testing import CliRunner

from taskforge import __version__
from taskforge.main import taskforge

pytestmark = [
    allure.epic("Command Line"),
    allure.feature("taskforge CLI"),
]

_PROPOSALS_REPLY = (
    "print('Title: Add request tracing\\nType: feature\\nPriority: high\\n"
    "Description: Propagate trace ids.\\nStory Points: 5\\nAcceptance Criteria:\\n"
    "- Trace id in logs\\n\\nTitle: Missing description')"
)


def _invoke(args: list[str]):
    return CliRunner().invoke(taskforge, args)


def test_version_option() -> None:
    result = _invoke(["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_tools_discover_reports_every_tool(tmp_path: Path, fake_bin) -> None:
    fake_bin("claude")

    result = _invoke(["tools", "discover", "--state-dir", str(tmp_path / ".taskforge")])

    assert result.exit_code == 0, result.output
    assert "claude-code available=yes version=2.5.1 priority=10" in result.output
    codex_line = next(line for line in result.output.splitlines() if "  codex " in line)
    assert "available=no" in codex_line
    assert "install='npm install -g @openai/codex'" in codex_line
    assert "Available: 1/4" in result.output


def test_tools_best_uses_available_tool(fake_bin) -> None:
    fake_bin("gemini")

    result = _invoke(["tools", "best", "--type", "analyze"])

    assert result.exit_code == 0, result.output
    assert "Best tool for analyze: gemini (priority=30)" in result.output


def test_tools_best_fails_without_tools(fake_bin) -> None:
    fake_bin("unrelated")

    result = _invoke(["tools", "best", "--type", "code"])

    assert result.exit_code != 0
    assert "No available tool supports task type code." in result.output
    assert "No suitable tool found." in result.output


def test_custom_tool_from_environment(fake_bin, monkeypatch) -> None:
    fake_bin("helper")
    monkeypatch.setenv("TASKFORGE_CUSTOM_TOOLS", "helper|helper|explain|1")

    result = _invoke(["tools", "best", "--type", "explain"])

    assert result.exit_code == 0, result.output
    assert "Best tool for explain: helper (priority=1)" in result.output


def test_exec_dry_run_executes_nothing(fake_bin) -> None:
    fake_bin("claude", "raise SystemExit('must not run')")

    result = _invoke(["exec", "Fix the login crash", "--file", "auth.py", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Type: debug (inferred)" in result.output
    assert "Dry run, nothing executed." in result.output
    assert "Files: auth.py" in result.output
    assert "must not run" not in result.output


def test_exec_streams_tool_output(tmp_path: Path, fake_bin, monkeypatch) -> None:
    fake_bin(
        "claude",
        "print('working on it')\nprint('Created: src/health.py')\nprint('Total tokens: 321')",
    )
    monkeypatch.chdir(tmp_path)

    result = _invoke(["exec", "Add a health endpoint", "--type", "code"])

    assert result.exit_code == 0, result.output
    assert "Using: claude-code" in result.output
    assert "working on it" in result.output
    assert "Result: success tool=claude-code" in result.output
    assert "Tokens used: 321" in result.output
    assert "  src/health.py" in result.output


def test_exec_passes_project_memory_to_tool(tmp_path: Path, fake_bin, monkeypatch) -> None:
    fake_bin("claude")
    decisions = tmp_path / ".taskforge" / "memory" / "decisions"
    decisions.mkdir(parents=True)
    (decisions / "2026-01-01-storage.md").write_text("Use SQLite for local state.", "utf-8")
    monkeypatch.chdir(tmp_path)

    result = _invoke(["exec", "Add an export command", "--type", "code"])

    assert result.exit_code == 0, result.output
    assert "Recent decisions: 1 recorded" in result.output
    assert "Use SQLite for local state." in result.output


def test_exec_reports_tool_failure(tmp_path: Path, fake_bin, monkeypatch) -> None:
    fake_bin("claude", "print('Error: invalid api key')\nsys.exit(1)")
    monkeypatch.chdir(tmp_path)

    result = _invoke(["exec", "Add caching", "--type", "code"])

    assert result.exit_code != 0
    assert "Result: failed tool=claude-code" in result.output
    assert "Error (access_or_auth): claude-code: exited with code 1" in result.output
    assert "Execution failed." in result.output


def test_exec_unknown_tool(fake_bin) -> None:
    fake_bin("claude")

    result = _invoke(["exec", "Add caching", "--tool", "cursor"])

    assert result.exit_code != 0
    assert "Unknown tool: 'cursor'" in result.output
    assert "Execution failed." in result.output


def test_exec_explicit_tool_must_be_available(fake_bin) -> None:
    fake_bin("claude")

    result = _invoke(["exec", "Add caching", "--tool", "codex"])

    assert result.exit_code != 0
    assert "Tool not available: codex." in result.output


def test_propose_prints_parsed_proposals(tmp_path: Path, fake_bin, monkeypatch) -> None:
    fake_bin("claude", _PROPOSALS_REPLY)
    vision = tmp_path / "VISION.md"
    vision.write_text("Observable by default.\n", "utf-8")
    monkeypatch.chdir(tmp_path)

    result = _invoke(
        ["propose", "--count", "3", "--vision-file", str(vision), "--recent-task", "Ship v1"],
    )

    assert result.exit_code == 0, result.output
    assert (
        "Proposal run: status=ok tool=claude-code proposals=1 dropped=1 executions=1"
        in result.output
    )
    assert "1. [feature/high, 5 pts] Add request tracing" in result.output
    assert "   - Trace id in logs" in result.output


def test_propose_without_analysis_tool(fake_bin) -> None:
    fake_bin("codex")

    result = _invoke(["propose"])

    assert result.exit_code != 0
    assert "status=no_tool" in result.output
    assert "Proposal run failed." in result.output


def test_propose_rejects_both_vision_sources(tmp_path: Path) -> None:
    vision = tmp_path / "VISION.md"
    vision.write_text("x", "utf-8")

    result = _invoke(["propose", "--vision", "inline", "--vision-file", str(vision)])

    assert result.exit_code == 2


def test_configuration_errors_are_reported(fake_bin, monkeypatch) -> None:
    fake_bin("claude")
    monkeypatch.setenv("TASKFORGE_TIMEOUT_MS", "soon")

    result = _invoke(["tools", "discover"])

    assert result.exit_code != 0
    assert "Configuration error" in result.output
