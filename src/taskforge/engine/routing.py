"""Task type resolution helpers for tool selection."""

from __future__ import annotations

import re

from taskforge.engine.models import TaskType

SUPPORTED_TASK_TYPES = tuple(task_type.value for task_type in TaskType)

# Checked in order; the first keyword hit wins.
_INFERENCE_KEYWORDS: tuple[tuple[TaskType, tuple[str, ...]], ...] = (
    (TaskType.ANALYZE, ("analyze", "analyse", "assess", "audit")),
    (TaskType.REVIEW, ("review",)),
    (TaskType.TEST, ("test", "spec", "coverage")),
    (TaskType.REFACTOR, ("refactor", "cleanup", "clean up", "reorganize")),
    (TaskType.DEBUG, ("debug", "fix", "bug", "crash", "traceback")),
    (TaskType.DOCUMENT, ("document", "readme", "docs", "docstring")),
    (TaskType.EXPLAIN, ("explain", "what is", "how does", "why does")),
)


def parse_task_type(value: str | TaskType) -> TaskType:
    """Return the task type for a user-supplied name."""

    if isinstance(value, TaskType):
        return value
    normalized = _normalize_task_type(value)
    _validate_supported_task_type(normalized)
    return TaskType(normalized)


def infer_task_type(task: str) -> TaskType:
    """Guess the task type from free-text instructions, defaulting to code."""

    lowered = task.lower()
    for task_type, keywords in _INFERENCE_KEYWORDS:
        # Keywords match at word starts so "latest" is not a test task.
        if any(re.search(rf"\b{re.escape(keyword)}", lowered) for keyword in keywords):
            return task_type
    return TaskType.CODE


def resolve_task_type(*, task: str, task_type_override: str | None) -> TaskType:
    """Use the explicit override when given, otherwise infer from the task."""

    if task_type_override is not None and task_type_override.strip():
        return parse_task_type(task_type_override)
    return infer_task_type(task)


def _normalize_task_type(value: str) -> str:
    return value.strip().lower()


def _validate_supported_task_type(task_type: str) -> None:
    if task_type in SUPPORTED_TASK_TYPES:
        return
    raise ValueError(
        f"Unsupported task type: {task_type!r}. Use one of {', '.join(SUPPORTED_TASK_TYPES)}.",
    )
