from __future__ import annotations

import allure
import pytest

from taskforge.engine.failure_classifier import (
    TOOL_FAILURE_CLASSIFIER_VERSION,
    classify_tool_failure,
)
from taskforge.engine.models import FailureClass

pytestmark = [
    allure.epic("Tool Execution"),
    allure.feature("Failure Classification"),
]


def test_classifier_version_is_pinned() -> None:
    assert TOOL_FAILURE_CLASSIFIER_VERSION == 1


def test_billing_wins_over_transient_exit_code() -> None:
    result = classify_tool_failure(
        tool="codex",
        exit_code=137,
        output="Error: insufficient credits for this request",
    )

    assert result.failure_class is FailureClass.BILLING_OR_QUOTA
    assert result.reason_code == "codex_billing_or_quota"
    assert result.matched_pattern == "insufficient"
    assert not result.retryable


def test_model_not_available() -> None:
    result = classify_tool_failure(
        tool="claude",
        exit_code=1,
        output="API Error: model not found: claude-unknown",
    )

    assert result.failure_class is FailureClass.MODEL_NOT_AVAILABLE
    assert result.reason_code == "claude_model_not_available"


@pytest.mark.parametrize(
    ("output", "failure_class", "matched_rule"),
    [
        ("HTTP 429 Too Many Requests", FailureClass.BACKEND_TRANSIENT, "rate_limit_transient"),
        ("Server overloaded, retry", FailureClass.BACKEND_TRANSIENT, "rate_limit_transient"),
        ("You are not logged in.", FailureClass.ACCESS_OR_AUTH, "access_or_auth"),
        ("Invalid API key provided", FailureClass.ACCESS_OR_AUTH, "access_or_auth"),
        ("curl: could not resolve host", FailureClass.BACKEND_TRANSIENT, "generic_transient"),
    ],
)
def test_output_patterns(output: str, failure_class: FailureClass, matched_rule: str) -> None:
    result = classify_tool_failure(tool="gemini", exit_code=1, output=output)

    assert result.failure_class is failure_class
    assert result.matched_rule == matched_rule
    assert result.retryable is (failure_class is FailureClass.BACKEND_TRANSIENT)


def test_transient_exit_code_without_markers() -> None:
    result = classify_tool_failure(tool="aider", exit_code=137, output="Killed")

    assert result.failure_class is FailureClass.BACKEND_TRANSIENT
    assert result.matched_rule == "transient_exit_code"
    assert result.matched_pattern is None
    assert result.retryable


def test_custom_transient_exit_codes() -> None:
    result = classify_tool_failure(
        tool="aider",
        exit_code=75,
        output="",
        transient_exit_codes=(75,),
    )

    assert result.failure_class is FailureClass.BACKEND_TRANSIENT


def test_unknown_failure_is_non_retryable() -> None:
    result = classify_tool_failure(tool="codex", exit_code=2, output="Traceback: KeyError 'x'")

    assert result.failure_class is FailureClass.BACKEND_NON_RETRYABLE
    assert result.reason_code == "codex_backend_non_retryable"
    assert result.matched_rule == "fallback_non_retryable"
    assert not result.retryable
