"""Runtime configuration for tool discovery and execution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from taskforge.engine.models import ConfigurationError, TaskType

BUILTIN_TOOL_NAMES = ("claude-code", "codex", "gemini", "aider")
_COMMAND_ENV_NAMES = {
    "claude-code": "TASKFORGE_CLAUDE_COMMAND",
    "codex": "TASKFORGE_CODEX_COMMAND",
    "gemini": "TASKFORGE_GEMINI_COMMAND",
    "aider": "TASKFORGE_AIDER_COMMAND",
}


@dataclass(slots=True)
class ExecutionSettings:
    """Process supervision limits."""

    timeout_ms: int = 300_000
    probe_timeout_seconds: float = 5.0
    terminate_grace_seconds: float = 2.0


@dataclass(slots=True)
class CustomToolSettings:
    """A generic command-line tool declared through configuration."""

    name: str
    executable: str
    capabilities: tuple[TaskType, ...]
    priority: int = 50


@dataclass(slots=True)
class ToolSettings:
    """Which tools get registered and how they are launched."""

    disabled: tuple[str, ...] = ()
    priorities: dict[str, int] = field(default_factory=dict)
    executables: dict[str, str] = field(default_factory=dict)
    custom: tuple[CustomToolSettings, ...] = ()


@dataclass(slots=True)
class ProposalSettings:
    """Defaults for the proposal pipeline."""

    count: int = 5
    max_rounds: int = 1
    max_attempts: int = 1


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    state_dir: Path = Path(".taskforge")
    memory_limit: int = 5
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    proposals: ProposalSettings = field(default_factory=ProposalSettings)

    @classmethod
    def from_env(cls, state_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        return cls(
            state_dir=state_dir or Path(os.getenv("TASKFORGE_STATE_DIR", ".taskforge")),
            memory_limit=_env_int("TASKFORGE_MEMORY_LIMIT", 5),
            execution=ExecutionSettings(
                timeout_ms=_env_int("TASKFORGE_TIMEOUT_MS", 300_000),
                probe_timeout_seconds=_env_float("TASKFORGE_PROBE_TIMEOUT_SECONDS", 5.0),
                terminate_grace_seconds=_env_float("TASKFORGE_TERMINATE_GRACE_SECONDS", 2.0),
            ),
            tools=ToolSettings(
                disabled=_split_csv(os.getenv("TASKFORGE_DISABLED_TOOLS", "")),
                priorities=_collect_priority_overrides(),
                executables=_collect_executable_overrides(),
                custom=_collect_custom_tools(),
            ),
            proposals=ProposalSettings(
                count=_env_int("TASKFORGE_PROPOSAL_COUNT", 5),
                max_rounds=_env_int("TASKFORGE_PROPOSAL_MAX_ROUNDS", 1),
                max_attempts=_env_int("TASKFORGE_PROPOSAL_MAX_ATTEMPTS", 1),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range or inconsistent values."""

        if self.execution.timeout_ms <= 0:
            raise ConfigurationError("TASKFORGE_TIMEOUT_MS must be > 0.")
        if self.execution.probe_timeout_seconds <= 0:
            raise ConfigurationError("TASKFORGE_PROBE_TIMEOUT_SECONDS must be > 0.")
        if self.execution.terminate_grace_seconds < 0:
            raise ConfigurationError("TASKFORGE_TERMINATE_GRACE_SECONDS must be >= 0.")
        if self.memory_limit < 0:
            raise ConfigurationError("TASKFORGE_MEMORY_LIMIT must be >= 0.")
        if self.proposals.count <= 0:
            raise ConfigurationError("TASKFORGE_PROPOSAL_COUNT must be > 0.")
        if self.proposals.max_rounds <= 0:
            raise ConfigurationError("TASKFORGE_PROPOSAL_MAX_ROUNDS must be > 0.")
        if self.proposals.max_attempts <= 0:
            raise ConfigurationError("TASKFORGE_PROPOSAL_MAX_ATTEMPTS must be > 0.")

        custom_names = {tool.name for tool in self.tools.custom}
        known_names = set(BUILTIN_TOOL_NAMES) | custom_names
        for name in self.tools.disabled:
            if name not in BUILTIN_TOOL_NAMES:
                raise ConfigurationError(
                    f"Unknown tool in TASKFORGE_DISABLED_TOOLS: {name!r}. "
                    f"Use one of {', '.join(BUILTIN_TOOL_NAMES)}.",
                )
        for name, priority in self.tools.priorities.items():
            if name not in known_names:
                raise ConfigurationError(f"Priority override for unknown tool: {name!r}")
            if priority < 0:
                raise ConfigurationError(f"Priority override must be >= 0: {name!r} -> {priority}")
        for name in self.tools.executables:
            if name not in BUILTIN_TOOL_NAMES:
                raise ConfigurationError(f"Executable override for unknown tool: {name!r}")
        clashing = custom_names & set(BUILTIN_TOOL_NAMES)
        if clashing:
            raise ConfigurationError(
                f"Custom tool names clash with built-in tools: {', '.join(sorted(clashing))}",
            )


def _collect_priority_overrides() -> dict[str, int]:
    overrides: dict[str, int] = {}
    for token in _split_csv(os.getenv("TASKFORGE_TOOL_PRIORITIES", "")):
        if ":" not in token:
            raise ConfigurationError(
                "Invalid TASKFORGE_TOOL_PRIORITIES entry: "
                f"{token!r}. Expected format '<tool>:<priority>'.",
            )
        name, raw_priority = token.rsplit(":", 1)
        try:
            overrides[name.strip().lower()] = int(raw_priority.strip())
        except ValueError as error:
            raise ConfigurationError(
                f"Invalid TASKFORGE_TOOL_PRIORITIES value for {name.strip()!r}: {raw_priority!r}",
            ) from error
    return overrides


def _collect_executable_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name, env_name in _COMMAND_ENV_NAMES.items():
        value = os.getenv(env_name, "").strip()
        if value:
            overrides[name] = value
    return overrides


def _collect_custom_tools() -> tuple[CustomToolSettings, ...]:
    tools: list[CustomToolSettings] = []
    for token in _split_csv(os.getenv("TASKFORGE_CUSTOM_TOOLS", ""), lowercase=False):
        parts = [part.strip() for part in token.split("|")]
        if len(parts) not in (3, 4) or not all(parts[:3]):
            raise ConfigurationError(
                "Invalid TASKFORGE_CUSTOM_TOOLS entry: "
                f"{token!r}. Expected format '<name>|<executable>|<cap+cap>[|<priority>]'.",
            )
        name, executable, raw_capabilities = parts[:3]
        try:
            capabilities = tuple(
                TaskType(value.strip().lower())
                for value in raw_capabilities.split("+")
                if value.strip()
            )
        except ValueError as error:
            raise ConfigurationError(
                f"Invalid capability in TASKFORGE_CUSTOM_TOOLS entry {name!r}: {error}",
            ) from error
        priority = 50
        if len(parts) == 4 and parts[3]:
            try:
                priority = int(parts[3])
            except ValueError as error:
                raise ConfigurationError(
                    f"Invalid priority in TASKFORGE_CUSTOM_TOOLS entry {name!r}: {parts[3]!r}",
                ) from error
        tools.append(
            CustomToolSettings(
                name=name.lower(),
                executable=executable,
                capabilities=capabilities,
                priority=priority,
            ),
        )
    return tuple(tools)


def _split_csv(raw: str, *, lowercase: bool = True) -> tuple[str, ...]:
    values: list[str] = []
    for part in raw.split(","):
        normalized = part.strip().lower() if lowercase else part.strip()
        if normalized and normalized not in values:
            values.append(normalized)
    return tuple(values)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid number value for {name}: {value!r}") from error
