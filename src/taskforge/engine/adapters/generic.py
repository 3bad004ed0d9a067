"""Adapter for arbitrary command-line tools configured at runtime."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from taskforge.engine.adapters.base import CliToolAdapter, ToolInvocation
from taskforge.engine.models import ExecutionContext, TaskType


class GenericCliAdapter(CliToolAdapter):
    """Run ``<executable> <args...> <prompt>`` or pipe the prompt via stdin."""

    probe_args = (("--version",), ("--help",))
    artifact_pattern = re.compile(
        r"(?:created|modified|wrote|updated):\s*(?P<path>\S+)",
        re.IGNORECASE,
    )

    def __init__(
        self,
        *,
        name: str,
        executable: str,
        capabilities: Iterable[TaskType | str],
        args: Iterable[str] = (),
        prompt_via_stdin: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(name=name, executable=executable, capabilities=capabilities, **kwargs)
        self.args = tuple(args)
        self.prompt_via_stdin = prompt_via_stdin

    def build_command(self, context: ExecutionContext) -> ToolInvocation:
        prompt = self.format_task(context)
        if self.prompt_via_stdin:
            return ToolInvocation(argv=(self.executable, *self.args), stdin_text=prompt)
        return ToolInvocation(argv=(self.executable, *self.args, prompt))
