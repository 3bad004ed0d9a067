"""Usage extraction helpers for tool output streams."""

from __future__ import annotations

import re
from dataclasses import dataclass

USAGE_PARSER_VERSION = "v1"

_JSON_PROMPT_TOKENS = re.compile(r'"(?:prompt|input)_tokens"\s*:\s*(\d+)', re.IGNORECASE)
_JSON_COMPLETION_TOKENS = re.compile(
    r'"(?:completion|output)_tokens"\s*:\s*(\d+)',
    re.IGNORECASE,
)
_JSON_TOTAL_TOKENS = re.compile(r'"total_tokens"\s*:\s*(\d+)', re.IGNORECASE)

_CODEX_TOKENS_USED = re.compile(r"tokens used\s*[:\r\n ]+\s*([\d,]+)", re.IGNORECASE)
_AIDER_TOKENS = re.compile(
    r"tokens:\s*([\d.,]+)(k?)\s*sent,\s*([\d.,]+)(k?)\s*received",
    re.IGNORECASE,
)
_INPUT_TOKENS = re.compile(r"input[_ ]tokens?\s*[:=]\s*([\d,]+)", re.IGNORECASE)
_OUTPUT_TOKENS = re.compile(r"(?:output|completion)[_ ]tokens?\s*[:=]\s*([\d,]+)", re.IGNORECASE)
_TOTAL_TOKENS = re.compile(r"total[_ ]tokens?\s*[:=]\s*([\d,]+)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class UsageExtraction:
    """Best-effort token usage extraction result."""

    prompt_tokens: int | None
    completion_tokens: int | None
    total_tokens: int | None
    usage_status: str
    parser_version: str = USAGE_PARSER_VERSION
    reason: str | None = None


def extract_usage(*, tool: str, output: str) -> UsageExtraction:
    """Extract token usage from structured or textual tool output."""

    structured = _extract_structured(output)
    if structured is not None:
        return structured

    textual = _extract_textual(tool=tool, output=output)
    if textual is not None:
        return textual

    return UsageExtraction(
        prompt_tokens=None,
        completion_tokens=None,
        total_tokens=None,
        usage_status="unknown",
        reason="no_usage_markers",
    )


def _extract_structured(output: str) -> UsageExtraction | None:
    prompt = _extract_int(_JSON_PROMPT_TOKENS, output)
    completion = _extract_int(_JSON_COMPLETION_TOKENS, output)
    total = _extract_int(_JSON_TOTAL_TOKENS, output)
    if prompt is None and completion is None and total is None:
        return None
    return _build(prompt=prompt, completion=completion, total=total)


def _extract_textual(*, tool: str, output: str) -> UsageExtraction | None:
    if tool == "aider":
        match = _AIDER_TOKENS.search(output)
        if match is not None:
            sent = _parse_scaled(match.group(1), match.group(2))
            received = _parse_scaled(match.group(3), match.group(4))
            if sent is not None and received is not None:
                return _build(prompt=sent, completion=received, total=None)

    total = _extract_int(_TOTAL_TOKENS, output)
    if total is None and tool == "codex":
        total = _extract_int(_CODEX_TOKENS_USED, output)
    prompt = _extract_int(_INPUT_TOKENS, output)
    completion = _extract_int(_OUTPUT_TOKENS, output)
    if prompt is None and completion is None and total is None:
        return None
    return _build(prompt=prompt, completion=completion, total=total)


def _build(*, prompt: int | None, completion: int | None, total: int | None) -> UsageExtraction:
    total_was_reported = total is not None
    if total is None:
        known = [value for value in (prompt, completion) if value is not None]
        total = sum(known) if known else None
    return UsageExtraction(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total,
        usage_status="reported" if total_was_reported else "estimated",
    )


def _extract_int(pattern: re.Pattern[str], text: str) -> int | None:
    match = pattern.search(text)
    if match is None:
        return None
    raw = match.group(1).replace(",", "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def _parse_scaled(raw: str, suffix: str) -> int | None:
    try:
        value = float(raw.replace(",", ""))
    except ValueError:
        return None
    if suffix.lower() == "k":
        value *= 1_000
    return round(value)
