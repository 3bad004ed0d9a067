"""Adapter for the aider patch-applying CLI."""

from __future__ import annotations

import re

from taskforge.engine.adapters.base import CliToolAdapter, ToolInvocation, recent_decisions
from taskforge.engine.models import ExecutionContext, TaskType

# aider exits 0 even when it could not apply the edits it proposed.
_EDIT_FAILURE_PATTERNS: tuple[str, ...] = (
    "failed to apply edit",
    "did not conform to the edit format",
    "searchreplacenomatch",
    "unable to apply",
)


class AiderAdapter(CliToolAdapter):
    """aider in scripted single-message mode."""

    default_name = "aider"
    default_executable = "aider"
    default_capabilities = frozenset(
        {TaskType.CODE, TaskType.REFACTOR, TaskType.TEST, TaskType.DOCUMENT},
    )
    default_priority = 40
    default_install_hint = "python -m pip install aider-install && aider-install"
    artifact_pattern = re.compile(
        r"(?:Applied edit to|Created|Modified)\s+(?P<path>\S+)",
        re.IGNORECASE,
    )

    def build_command(self, context: ExecutionContext) -> ToolInvocation:
        argv: list[str] = [self.executable, "--yes-always", "--no-pretty"]
        for path in context.files:
            argv.extend(["--file", path])
        argv.extend(["--message", self.format_task(context)])
        return ToolInvocation(argv=tuple(argv))

    def format_task(self, context: ExecutionContext) -> str:
        # Files are attached through --file rather than listed in the prompt.
        prompt = context.task
        if context.skill is not None:
            prompt = f"[Skill: {context.skill}]\n\n{prompt}"
        decisions = recent_decisions(context)
        if decisions:
            prompt += "\n\nProject decisions to consider:\n" + "\n---\n".join(decisions)
        return prompt

    def detect_logical_failure(self, output: str) -> str | None:
        lowered = output.lower()
        for pattern in _EDIT_FAILURE_PATTERNS:
            if pattern in lowered:
                return f"edits were not applied ({pattern!r} reported)"
        return None
