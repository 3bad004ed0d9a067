"""Shared test fixtures."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from taskforge.engine.adapters import GenericCliAdapter
from taskforge.engine.models import ExecutionContext, TaskType

ECHO_TOOL_ARGS = ("-m", "taskforge.engine.echo_tool")

_TASKFORGE_ENV = (
    "TASKFORGE_STATE_DIR",
    "TASKFORGE_TIMEOUT_MS",
    "TASKFORGE_PROBE_TIMEOUT_SECONDS",
    "TASKFORGE_TERMINATE_GRACE_SECONDS",
    "TASKFORGE_DISABLED_TOOLS",
    "TASKFORGE_TOOL_PRIORITIES",
    "TASKFORGE_CLAUDE_COMMAND",
    "TASKFORGE_CODEX_COMMAND",
    "TASKFORGE_GEMINI_COMMAND",
    "TASKFORGE_AIDER_COMMAND",
    "TASKFORGE_CUSTOM_TOOLS",
    "TASKFORGE_MEMORY_LIMIT",
    "TASKFORGE_PROPOSAL_COUNT",
    "TASKFORGE_PROPOSAL_MAX_ROUNDS",
    "TASKFORGE_PROPOSAL_MAX_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def _clean_taskforge_env(monkeypatch):
    for name in _TASKFORGE_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def make_context(tmp_path: Path) -> Callable[..., ExecutionContext]:
    """Build execution contexts rooted in a temporary project."""

    def _make(task: str = "Implement the feature", **overrides) -> ExecutionContext:
        values = {
            "task": task,
            "task_type": TaskType.CODE,
            "project_root": tmp_path,
            "state_dir": tmp_path / ".taskforge",
        }
        values.update(overrides)
        return ExecutionContext(**values)

    return _make


@pytest.fixture()
def echo_adapter_factory() -> Callable[..., GenericCliAdapter]:
    """Generic adapters that run the bundled echo tool under this interpreter."""

    def _make(*extra_args: str, name: str = "echo", **kwargs) -> GenericCliAdapter:
        kwargs.setdefault("capabilities", list(TaskType))
        return GenericCliAdapter(
            name=name,
            executable=sys.executable,
            args=(*ECHO_TOOL_ARGS, *extra_args),
            **kwargs,
        )

    return _make


@pytest.fixture()
def fake_bin(tmp_path: Path, monkeypatch) -> Callable[..., Path]:
    """Write fake tool executables into a directory that is the only PATH entry.

    By default the tool answers ``--version``/``--help`` probes and otherwise
    runs ``body``; ``raw=True`` writes ``body`` as the whole script.
    """

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("PATH", str(bin_dir))

    def _write(
        name: str,
        body: str = "print(' '.join(sys.argv[1:]))",
        *,
        version: str = "2.5.1",
        raw: bool = False,
    ) -> Path:
        script = body if raw else _PROBE_AWARE_TOOL.format(name=name, version=version) + body
        return _write_fake_tool(bin_dir / name, name, script)

    return _write


_PROBE_AWARE_TOOL = """
import sys

if "--version" in sys.argv:
    print("{name} {version}")
    raise SystemExit(0)
if "--help" in sys.argv:
    print("{name} help")
    raise SystemExit(0)

"""


def _write_fake_tool(path: Path, name: str, script: str) -> Path:
    implementation = path.parent / f"{name}_impl.py"
    implementation.write_text(script.strip() + "\n", "utf-8")

    if os.name == "nt":
        launcher = path.parent / f"{name}.cmd"
        launcher.write_text(
            f'@echo off\r\n"{sys.executable}" "{implementation}" %*\r\n',
            "utf-8",
        )
        return launcher
    path.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
        "utf-8",
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path
