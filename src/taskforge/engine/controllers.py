"""Controllers for taskforge CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from taskforge.config import Settings
from taskforge.engine.adapters.base import ToolAdapter
from taskforge.engine.bootstrap import build_default_registry
from taskforge.engine.memory import load_memory
from taskforge.engine.models import (
    ExecutionContext,
    ExecutionResult,
    StreamCallbacks,
    TaskType,
)
from taskforge.engine.proposals import ProposalPipeline, ProposalRequest, ProposalRunResult
from taskforge.engine.registry import ToolRegistry
from taskforge.engine.routing import parse_task_type, resolve_task_type

logger = logging.getLogger(__name__)

RegistryFactory = Callable[[Settings], ToolRegistry]
TASK_PREVIEW_CHARS = 100


@dataclass(slots=True)
class ToolsBestCommand:
    """CLI input for best-tool lookup."""

    task_type: str
    state_dir: Path | None = None


@dataclass(slots=True)
class ExecCommand:
    """CLI input for direct task execution."""

    task: str
    tool: str | None = None
    task_type: str | None = None
    files: tuple[str, ...] = ()
    skill: str | None = None
    timeout_ms: int | None = None
    dry_run: bool = False
    verbose: bool = False
    project_root: Path | None = None
    state_dir: Path | None = None


@dataclass(slots=True)
class ProposeCommand:
    """CLI input for proposal generation."""

    count: int | None = None
    vision: str | None = None
    vision_file: Path | None = None
    recent_tasks: tuple[str, ...] = ()
    codebase_analysis: str | None = None
    timeout_ms: int | None = None
    project_root: Path | None = None
    state_dir: Path | None = None


@dataclass(slots=True)
class CommandResult:
    """Report to render in CLI."""

    lines: list[str]
    success: bool


class TaskforgeCliController:
    """Wires settings, registry and pipeline for each CLI command."""

    def __init__(self, registry_factory: RegistryFactory = build_default_registry) -> None:
        self.registry_factory = registry_factory

    def discover_tools(self, *, state_dir: Path | None = None) -> list[str]:
        """List every configured tool with availability, version and install hint."""

        _, registry = self._load(state_dir)
        report = registry.discover()
        lines = ["Tools:"]
        for row in report:
            capabilities = ",".join(sorted(item.value for item in row.descriptor.capabilities))
            line = (
                f"  {row.descriptor.name} available={'yes' if row.available else 'no'} "
                f"version={row.version or '-'} priority={row.descriptor.priority} "
                f"capabilities={capabilities}"
            )
            if not row.available and row.install_hint:
                line += f" install={row.install_hint!r}"
            lines.append(line)
        available = sum(1 for row in report if row.available)
        lines.append(f"Available: {available}/{len(report)}")
        return lines

    def best_tool(self, command: ToolsBestCommand) -> CommandResult:
        try:
            task_type = parse_task_type(command.task_type)
        except ValueError as error:
            return CommandResult(lines=[str(error)], success=False)
        _, registry = self._load(command.state_dir)
        adapter = registry.find_best_tool(task_type)
        if adapter is None:
            return CommandResult(
                lines=[f"No available tool supports task type {task_type.value}."],
                success=False,
            )
        return CommandResult(
            lines=[
                f"Best tool for {task_type.value}: {adapter.name} "
                f"(priority={adapter.descriptor.priority})",
            ],
            success=True,
        )

    def execute(
        self,
        command: ExecCommand,
        *,
        echo: Callable[[str], None],
    ) -> CommandResult:
        """Run one task; streamed tool output goes through ``echo`` as it arrives."""

        try:
            task_type = resolve_task_type(task=command.task, task_type_override=command.task_type)
        except ValueError as error:
            return CommandResult(lines=[str(error)], success=False)

        preview = command.task[:TASK_PREVIEW_CHARS]
        if len(command.task) > TASK_PREVIEW_CHARS:
            preview += "..."
        header = [
            f"Task: {preview}",
            f"Tool: {command.tool or 'auto-select'}",
            f"Type: {task_type.value}{'' if command.task_type else ' (inferred)'}",
        ]
        if command.dry_run:
            return CommandResult(
                lines=[
                    *header,
                    "Dry run, nothing executed.",
                    f"Files: {', '.join(command.files) or 'none'}",
                    f"Skill: {command.skill or 'none'}",
                    f"Timeout: {command.timeout_ms or 'default'}",
                ],
                success=True,
            )

        settings, registry = self._load(command.state_dir)
        adapter, selection_error = _select_adapter(registry, command.tool, task_type)
        if adapter is None:
            return CommandResult(lines=[*header, selection_error or ""], success=False)

        for line in [*header, f"Using: {adapter.name}", ""]:
            echo(f"{line}\n")

        project_root = command.project_root or Path.cwd()
        context = ExecutionContext(
            task=command.task,
            task_type=task_type,
            project_root=project_root,
            state_dir=settings.state_dir,
            files=command.files,
            metadata={"skill": command.skill} if command.skill else {},
            memory=load_memory(settings.state_dir, limit=settings.memory_limit),
        )
        callbacks = StreamCallbacks(
            on_start=(lambda: echo("[started]\n")) if command.verbose else None,
            on_output=echo,
            on_error=(lambda message: echo(f"[error] {message}\n")) if command.verbose else None,
        )
        result = adapter.execute(context, callbacks, timeout_ms=command.timeout_ms)
        return CommandResult(lines=_render_result(result), success=result.success)

    def propose(self, command: ProposeCommand) -> CommandResult:
        vision = command.vision
        if command.vision_file is not None:
            try:
                vision = command.vision_file.read_text(encoding="utf-8").strip()
            except OSError as error:
                return CommandResult(lines=[f"Cannot read vision file: {error}"], success=False)

        settings, registry = self._load(command.state_dir)
        result = ProposalPipeline(registry).run(
            ProposalRequest(
                project_root=command.project_root or Path.cwd(),
                state_dir=settings.state_dir,
                count=command.count or settings.proposals.count,
                vision=vision,
                recent_tasks=command.recent_tasks,
                codebase_analysis=command.codebase_analysis,
                memory=load_memory(settings.state_dir, limit=settings.memory_limit),
                timeout_ms=command.timeout_ms,
                max_rounds=settings.proposals.max_rounds,
                max_attempts=settings.proposals.max_attempts,
            ),
        )
        return CommandResult(lines=_render_proposals(result), success=result.success)

    def _load(self, state_dir: Path | None) -> tuple[Settings, ToolRegistry]:
        settings = Settings.from_env(state_dir=state_dir)
        settings.validate()
        return settings, self.registry_factory(settings)


def _select_adapter(
    registry: ToolRegistry,
    tool_name: str | None,
    task_type: TaskType,
) -> tuple[ToolAdapter | None, str | None]:
    if tool_name is None:
        adapter = registry.find_best_tool(task_type)
        if adapter is None:
            return None, f"No available tool supports task type {task_type.value}."
        return adapter, None

    adapter = registry.get(tool_name.strip().lower())
    if adapter is None:
        known = ", ".join(item.name for item in registry.all())
        return None, f"Unknown tool: {tool_name!r}. Configured tools: {known or 'none'}."
    if not adapter.check_availability():
        return None, f"Tool not available: {adapter.name}."
    if not adapter.descriptor.supports(task_type):
        logger.warning(
            "Tool %s does not declare task type %s; running it anyway",
            adapter.name,
            task_type.value,
        )
    return adapter, None


def _render_result(result: ExecutionResult) -> list[str]:
    lines = [
        "",
        f"Result: {'success' if result.success else 'failed'} tool={result.tool_name} "
        f"duration_ms={result.duration_ms} exit_code="
        f"{'-' if result.exit_code is None else result.exit_code}",
    ]
    if result.tokens_used is not None:
        lines.append(f"Tokens used: {result.tokens_used}")
    if result.artifacts is not None and result.artifacts.files:
        lines.append("Files touched:")
        lines.extend(f"  {path}" for path in result.artifacts.files)
    if result.error:
        lines.append(
            f"Error ({result.failure_class.value if result.failure_class else 'unknown'}): "
            f"{result.error}",
        )
    return lines


def _render_proposals(result: ProposalRunResult) -> list[str]:
    if not result.success:
        return [
            f"Proposal run: status={result.status.value} tool={result.tool_name or '-'}",
            f"Error: {result.error}",
        ]
    lines = [
        f"Proposal run: status={result.status.value} tool={result.tool_name} "
        f"proposals={len(result.proposals)} dropped={result.dropped} "
        f"executions={result.executions}",
    ]
    for index, proposal in enumerate(result.proposals, start=1):
        lines.append(
            f"{index}. [{proposal.task_type}/{proposal.priority}, "
            f"{proposal.story_points} pts] {proposal.title}",
        )
        lines.append(f"   {proposal.description}")
        lines.extend(f"   - {criterion}" for criterion in proposal.acceptance_criteria)
    return lines
