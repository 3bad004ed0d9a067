from __future__ import annotations

import allure
import pytest

from taskforge.engine.models import TaskType
from taskforge.engine.routing import (
    SUPPORTED_TASK_TYPES,
    infer_task_type,
    parse_task_type,
    resolve_task_type,
)

pytestmark = [
    allure.epic("Tool Execution"),
    allure.feature("Registry & Selection"),
]


def test_supported_task_types_cover_the_closed_set() -> None:
    assert SUPPORTED_TASK_TYPES == (
        "code",
        "analyze",
        "test",
        "review",
        "refactor",
        "debug",
        "document",
        "explain",
    )


def test_parse_task_type_normalizes_case_and_whitespace() -> None:
    assert parse_task_type("  Review ") is TaskType.REVIEW
    assert parse_task_type(TaskType.DEBUG) is TaskType.DEBUG


def test_parse_task_type_rejects_unknown_names() -> None:
    with pytest.raises(ValueError, match="Unsupported task type: 'deploy'"):
        parse_task_type("deploy")


@pytest.mark.parametrize(
    ("task", "expected"),
    [
        ("Analyze the payment module for hotspots", TaskType.ANALYZE),
        ("Please review my last commit", TaskType.REVIEW),
        ("Write tests for the parser", TaskType.TEST),
        ("Refactor the settings loader", TaskType.REFACTOR),
        ("Fix the crash on empty input", TaskType.DEBUG),
        ("Update the README install section", TaskType.DOCUMENT),
        ("Explain how the scheduler works", TaskType.EXPLAIN),
        ("Add pagination to the latest items endpoint", TaskType.CODE),
        ("Add a prefix option", TaskType.CODE),
    ],
)
def test_infer_task_type(task: str, expected: TaskType) -> None:
    assert infer_task_type(task) is expected


def test_resolve_task_type_prefers_override() -> None:
    assert resolve_task_type(task="Fix the bug", task_type_override="test") is TaskType.TEST
    assert resolve_task_type(task="Fix the bug", task_type_override="  ") is TaskType.DEBUG
    assert resolve_task_type(task="Fix the bug", task_type_override=None) is TaskType.DEBUG
