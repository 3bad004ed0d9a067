from __future__ import annotations

import allure

from taskforge.engine.usage import USAGE_PARSER_VERSION, extract_usage

pytestmark = [
    allure.epic("Tool Execution"),
    allure.feature("Usage Extraction"),
]


def test_structured_json_usage() -> None:
    output = '{"result": "done", "usage": {"input_tokens": 1200, "output_tokens": 300}}'

    usage = extract_usage(tool="claude-code", output=output)

    assert usage.prompt_tokens == 1200
    assert usage.completion_tokens == 300
    assert usage.total_tokens == 1500
    assert usage.usage_status == "estimated"
    assert usage.parser_version == USAGE_PARSER_VERSION


def test_structured_total_is_reported() -> None:
    usage = extract_usage(tool="gemini", output='{"total_tokens": 812}')

    assert usage.total_tokens == 812
    assert usage.usage_status == "reported"


def test_aider_scaled_summary() -> None:
    usage = extract_usage(tool="aider", output="Tokens: 12k sent, 1.5k received. Cost: $0.04")

    assert usage.prompt_tokens == 12_000
    assert usage.completion_tokens == 1_500
    assert usage.total_tokens == 13_500


def test_codex_tokens_used_footer() -> None:
    usage = extract_usage(tool="codex", output="Done.\ntokens used\n4,096\n")

    assert usage.total_tokens == 4_096
    assert usage.usage_status == "reported"


def test_codex_footer_is_ignored_for_other_tools() -> None:
    usage = extract_usage(tool="gemini", output="tokens used\n4,096\n")

    assert usage.total_tokens is None


def test_no_usage_markers() -> None:
    usage = extract_usage(tool="claude-code", output="All good, nothing to report.")

    assert usage.total_tokens is None
    assert usage.usage_status == "unknown"
    assert usage.reason == "no_usage_markers"
