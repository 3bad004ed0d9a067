"""Tool adapter implementations."""

from __future__ import annotations

from typing import Any

from taskforge.engine.adapters.aider import AiderAdapter
from taskforge.engine.adapters.base import CliToolAdapter, ToolAdapter, ToolInvocation
from taskforge.engine.adapters.claude_code import ClaudeCodeAdapter
from taskforge.engine.adapters.codex import CodexAdapter
from taskforge.engine.adapters.gemini import GeminiAdapter
from taskforge.engine.adapters.generic import GenericCliAdapter
from taskforge.engine.models import ConfigurationError

BUILTIN_ADAPTERS: dict[str, type[CliToolAdapter]] = {
    ClaudeCodeAdapter.default_name: ClaudeCodeAdapter,
    CodexAdapter.default_name: CodexAdapter,
    GeminiAdapter.default_name: GeminiAdapter,
    AiderAdapter.default_name: AiderAdapter,
}


def create_adapter(kind: str, **overrides: Any) -> CliToolAdapter:
    """Instantiate a built-in adapter by tool name."""

    try:
        adapter_class = BUILTIN_ADAPTERS[kind.strip().lower()]
    except KeyError as error:
        raise ConfigurationError(
            f"Unknown tool: {kind!r}. Use one of {', '.join(BUILTIN_ADAPTERS)}.",
        ) from error
    return adapter_class(**overrides)


__all__ = [
    "BUILTIN_ADAPTERS",
    "AiderAdapter",
    "ClaudeCodeAdapter",
    "CliToolAdapter",
    "CodexAdapter",
    "GeminiAdapter",
    "GenericCliAdapter",
    "ToolAdapter",
    "ToolInvocation",
    "create_adapter",
]
