"""Adapter for the Gemini CLI."""

from __future__ import annotations

import re

from taskforge.engine.adapters.base import CliToolAdapter, ToolInvocation, recent_decisions
from taskforge.engine.models import ExecutionContext, TaskType

_SANDBOXED_TASK_TYPES = frozenset({TaskType.CODE, TaskType.DEBUG})


class GeminiAdapter(CliToolAdapter):
    """Gemini CLI in one-shot prompt mode."""

    default_name = "gemini"
    default_executable = "gemini"
    default_capabilities = frozenset(
        {
            TaskType.ANALYZE,
            TaskType.EXPLAIN,
            TaskType.DOCUMENT,
            TaskType.REVIEW,
            TaskType.CODE,
        },
    )
    default_priority = 30
    default_install_hint = "npm install -g @google/gemini-cli"
    artifact_pattern = re.compile(
        r"(?:created|modified|wrote|updated)(?: file)?:?\s+(?P<path>[\w./-]+\.\w+)",
        re.IGNORECASE,
    )

    def build_command(self, context: ExecutionContext) -> ToolInvocation:
        argv: list[str] = [self.executable]
        if context.task_type in _SANDBOXED_TASK_TYPES:
            argv.append("--sandbox")
        argv.extend(["--prompt", self.format_task(context)])
        return ToolInvocation(argv=tuple(argv))

    def format_task(self, context: ExecutionContext) -> str:
        parts = [f"Task type: {context.task_type.value}"]
        if context.skill is not None:
            parts.append(f"Skill: {context.skill}")
        if context.files:
            parts.append(f"Files: {', '.join(context.files)}")

        prompt = f"[{' | '.join(parts)}]\n\n{context.task}"
        decisions = recent_decisions(context)
        if decisions:
            prompt += "\n\nProject decisions to consider:\n" + "\n---\n".join(decisions)
        return prompt
