"""Domain models for tool selection and execution."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

_TOOL_NAME = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


class ConfigurationError(ValueError):
    """Invalid registry or settings configuration."""


class TaskType(str, Enum):
    """Closed set of work categories used to match tasks to tools."""

    CODE = "code"
    ANALYZE = "analyze"
    TEST = "test"
    REVIEW = "review"
    REFACTOR = "refactor"
    DEBUG = "debug"
    DOCUMENT = "document"
    EXPLAIN = "explain"


class FailureClass(str, Enum):
    """Normalized failure classes attached to unsuccessful executions."""

    UNAVAILABLE = "unavailable"
    SPAWN_FAILED = "spawn_failed"
    TIMEOUT = "timeout"
    TOOL_REPORTED = "tool_reported"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Static identity of one external tool."""

    name: str
    capabilities: frozenset[TaskType]
    priority: int = 50

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _TOOL_NAME.match(self.name):
            raise ConfigurationError(
                f"Invalid tool name: {self.name!r}. Use a lower-case slug like 'claude-code'.",
            )
        try:
            capabilities = frozenset(TaskType(value) for value in self.capabilities)
        except ValueError as error:
            raise ConfigurationError(f"Tool {self.name!r} declares {error}") from error
        if not capabilities:
            raise ConfigurationError(f"Tool {self.name!r} must declare at least one capability.")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ConfigurationError(f"Tool {self.name!r} priority must be an integer.")
        if self.priority < 0:
            raise ConfigurationError(f"Tool {self.name!r} priority must be >= 0.")
        object.__setattr__(self, "capabilities", capabilities)

    def supports(self, task_type: TaskType) -> bool:
        """Return whether the tool declares the task type."""

        return task_type in self.capabilities


@dataclass(frozen=True, slots=True)
class MemoryContext:
    """Read-only grounding snippets loaded from the project state dir."""

    decisions: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    learnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.decisions or self.patterns or self.learnings)


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Normalized request describing one unit of work for a tool."""

    task: str
    task_type: TaskType
    project_root: Path
    state_dir: Path
    files: tuple[str, ...] = ()
    metadata: Mapping[str, object] = field(default_factory=dict)
    memory: MemoryContext | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "task_type", TaskType(self.task_type))
        object.__setattr__(self, "files", tuple(self.files))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def skill(self) -> str | None:
        value = self.metadata.get("skill")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


@dataclass(frozen=True, slots=True)
class ExecutionArtifacts:
    """Files and code blocks reported by a tool."""

    files: tuple[str, ...] = ()
    code_blocks: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Normalized outcome of one tool invocation."""

    success: bool
    output: str
    duration_ms: int
    tool_name: str
    error: str | None = None
    artifacts: ExecutionArtifacts | None = None
    tokens_used: int | None = None
    failure_class: FailureClass | None = None
    exit_code: int | None = None


@dataclass(frozen=True, slots=True)
class StreamCallbacks:
    """Progress hooks invoked by the execution engine."""

    on_start: Callable[[], None] | None = None
    on_output: Callable[[str], None] | None = None
    on_error: Callable[[str], None] | None = None
