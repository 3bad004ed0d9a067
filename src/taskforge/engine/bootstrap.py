"""Startup wiring: build a registry from settings."""

from __future__ import annotations

from taskforge.config import BUILTIN_TOOL_NAMES, Settings
from taskforge.engine.adapters import GenericCliAdapter, create_adapter
from taskforge.engine.registry import ToolRegistry


def build_default_registry(settings: Settings) -> ToolRegistry:
    """Register the built-in adapters plus configured custom tools.

    Built-ins come first in a fixed order so that equal priorities resolve
    the same way on every run.
    """

    settings.validate()
    execution = settings.execution
    common = {
        "timeout_ms": execution.timeout_ms,
        "probe_timeout_seconds": execution.probe_timeout_seconds,
        "terminate_grace_seconds": execution.terminate_grace_seconds,
    }

    registry = ToolRegistry()
    for name in BUILTIN_TOOL_NAMES:
        if name in settings.tools.disabled:
            continue
        registry.register(
            create_adapter(
                name,
                executable=settings.tools.executables.get(name),
                priority=settings.tools.priorities.get(name),
                **common,
            ),
        )
    for tool in settings.tools.custom:
        registry.register(
            GenericCliAdapter(
                name=tool.name,
                executable=tool.executable,
                capabilities=tool.capabilities,
                priority=settings.tools.priorities.get(tool.name, tool.priority),
                **common,
            ),
        )
    return registry
