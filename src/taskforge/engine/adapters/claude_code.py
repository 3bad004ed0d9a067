"""Adapter for the Claude Code CLI."""

from __future__ import annotations

import re

from taskforge.engine.adapters.base import CliToolAdapter, ToolInvocation, recent_decisions
from taskforge.engine.models import ExecutionContext, TaskType


class ClaudeCodeAdapter(CliToolAdapter):
    """Claude Code in non-interactive print mode."""

    default_name = "claude-code"
    default_executable = "claude"
    default_capabilities = frozenset(TaskType)
    default_priority = 10
    default_install_hint = "npm install -g @anthropic-ai/claude-code"
    artifact_pattern = re.compile(
        r"(?:created|modified|wrote|saved|updated):\s*(?P<path>\S+)",
        re.IGNORECASE,
    )

    def build_command(self, context: ExecutionContext) -> ToolInvocation:
        return ToolInvocation(argv=(self.executable, "--print", self.format_task(context)))

    def format_task(self, context: ExecutionContext) -> str:
        decisions = recent_decisions(context)
        header = [f"[Skill: {context.skill or context.task_type.value}]"]
        if context.files:
            header.append(f"Files: {', '.join(context.files)}")
        if decisions:
            header.append(f"Recent decisions: {len(decisions)} recorded")

        prompt = f"{' | '.join(header)}\n\n{context.task}"
        if decisions:
            prompt += "\n\nProject decisions to consider:\n" + "\n---\n".join(decisions)
        return prompt
