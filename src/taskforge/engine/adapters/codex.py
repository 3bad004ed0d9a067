"""Adapter for the OpenAI Codex CLI."""

from __future__ import annotations

import re

from taskforge.engine.adapters.base import CliToolAdapter, ToolInvocation, recent_decisions
from taskforge.engine.models import ExecutionContext, TaskType


class CodexAdapter(CliToolAdapter):
    """Codex ``exec`` mode with the prompt delivered on stdin."""

    default_name = "codex"
    default_executable = "codex"
    default_capabilities = frozenset(
        {
            TaskType.CODE,
            TaskType.TEST,
            TaskType.REFACTOR,
            TaskType.DEBUG,
            TaskType.REVIEW,
            TaskType.EXPLAIN,
        },
    )
    default_priority = 20
    default_install_hint = "npm install -g @openai/codex"
    artifact_pattern = re.compile(
        r"(?:created|modified|wrote|updated):\s*(?P<path>\S+)",
        re.IGNORECASE,
    )

    def build_command(self, context: ExecutionContext) -> ToolInvocation:
        # "-" makes codex read the instructions from stdin.
        return ToolInvocation(
            argv=(self.executable, "exec", "--full-auto", "-"),
            stdin_text=self.format_task(context),
        )

    def format_task(self, context: ExecutionContext) -> str:
        prompt = context.task
        if context.skill is not None:
            prompt = f"Apply the {context.skill} skill.\n\n{prompt}"
        if context.files:
            prompt += "\n\nContext files:\n" + "\n".join(f"- {path}" for path in context.files)
        decisions = recent_decisions(context)
        if decisions:
            prompt += "\n\nProject decisions to consider:\n" + "\n---\n".join(decisions)
        return prompt
