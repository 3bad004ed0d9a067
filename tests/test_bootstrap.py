from __future__ import annotations

import allure
import pytest

from taskforge.config import CustomToolSettings, ExecutionSettings, Settings, ToolSettings
from taskforge.engine.adapters import ClaudeCodeAdapter, GenericCliAdapter
from taskforge.engine.bootstrap import build_default_registry
from taskforge.engine.models import ConfigurationError, TaskType

pytestmark = [
    allure.epic("Tool Execution"),
    allure.feature("Registry & Selection"),
]


def test_default_registry_has_builtins_in_fixed_order() -> None:
    registry = build_default_registry(Settings())

    assert [adapter.name for adapter in registry.all()] == [
        "claude-code",
        "codex",
        "gemini",
        "aider",
    ]
    claude = registry.get("claude-code")
    assert isinstance(claude, ClaudeCodeAdapter)
    assert claude.executable == "claude"
    assert claude.timeout_ms == 300_000


def test_disabled_tools_are_not_registered() -> None:
    registry = build_default_registry(
        Settings(tools=ToolSettings(disabled=("codex", "aider"))),
    )

    assert [adapter.name for adapter in registry.all()] == ["claude-code", "gemini"]


def test_overrides_reach_adapters() -> None:
    registry = build_default_registry(
        Settings(
            execution=ExecutionSettings(timeout_ms=1_000, probe_timeout_seconds=0.5),
            tools=ToolSettings(
                priorities={"gemini": 1},
                executables={"claude-code": "/opt/claude/bin/claude"},
            ),
        ),
    )

    gemini = registry.get("gemini")
    claude = registry.get("claude-code")
    assert gemini is not None
    assert gemini.descriptor.priority == 1
    assert claude.executable == "/opt/claude/bin/claude"
    assert claude.timeout_ms == 1_000
    assert claude.probe_timeout_seconds == 0.5


def test_custom_tools_are_registered_after_builtins() -> None:
    registry = build_default_registry(
        Settings(
            tools=ToolSettings(
                priorities={"helper": 2},
                custom=(
                    CustomToolSettings(
                        name="helper",
                        executable="helper-cli",
                        capabilities=(TaskType.EXPLAIN,),
                        priority=60,
                    ),
                ),
            ),
        ),
    )

    helper = registry.get("helper")
    assert [adapter.name for adapter in registry.all()][-1] == "helper"
    assert isinstance(helper, GenericCliAdapter)
    assert helper.executable == "helper-cli"
    assert helper.descriptor.priority == 2
    assert helper.descriptor.capabilities == frozenset({TaskType.EXPLAIN})


def test_invalid_settings_fail_before_registration() -> None:
    with pytest.raises(ConfigurationError, match="Unknown tool"):
        build_default_registry(Settings(tools=ToolSettings(disabled=("cursor",))))
