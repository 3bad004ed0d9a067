"""CLI entrypoint for taskforge."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from taskforge import __version__
from taskforge.engine.controllers import (
    CommandResult,
    ExecCommand,
    ProposeCommand,
    TaskforgeCliController,
    ToolsBestCommand,
)
from taskforge.engine.models import ConfigurationError
from taskforge.engine.routing import SUPPORTED_TASK_TYPES

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TaskforgeCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="taskforge")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity for engine diagnostics (written to stderr).",
)
def taskforge(log_level: str) -> None:
    """Route development tasks to installed AI coding CLIs.

    Tools are probed on every command; install or remove a CLI and the next
    run sees the change.
    """

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


@taskforge.group()
def tools() -> None:
    """Tool discovery commands."""


@tools.command("discover")
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Project state dir. Defaults to TASKFORGE_STATE_DIR or .taskforge.",
)
def tools_discover(state_dir: Path | None) -> None:
    """Show every configured tool with availability, version and install hint."""

    _emit_lines(_guard(lambda: CONTROLLER.discover_tools(state_dir=state_dir)))


@tools.command("best")
@click.option(
    "--type",
    "task_type",
    type=click.Choice(SUPPORTED_TASK_TYPES, case_sensitive=False),
    required=True,
    help="Task type to select a tool for.",
)
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Project state dir.",
)
def tools_best(task_type: str, state_dir: Path | None) -> None:
    """Print the available tool that would run a task of the given type."""

    result = _guard(
        lambda: CONTROLLER.best_tool(ToolsBestCommand(task_type=task_type, state_dir=state_dir)),
    )
    _finish(result, "No suitable tool found.")


@taskforge.command("exec")
@click.argument("task")
@click.option("--tool", default=None, help="Specific tool to use, for example `claude-code`.")
@click.option(
    "--type",
    "task_type",
    type=click.Choice(SUPPORTED_TASK_TYPES, case_sensitive=False),
    default=None,
    help="Task type. Inferred from the task text when omitted.",
)
@click.option("--file", "files", multiple=True, help="File to include in context. Can be repeated.")
@click.option("--skill", default=None, help="Skill name passed to the tool prompt.")
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Execution timeout. Defaults to TASKFORGE_TIMEOUT_MS.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Show what would be executed.")
@click.option("--verbose", is_flag=True, default=False, help="Echo start and error events.")
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Project state dir.",
)
def exec_task(  # noqa: PLR0913
    task: str,
    tool: str | None,
    task_type: str | None,
    files: tuple[str, ...],
    skill: str | None,
    timeout_ms: int | None,
    dry_run: bool,
    verbose: bool,
    state_dir: Path | None,
) -> None:
    """Execute one task with the best available tool, streaming its output."""

    result = _guard(
        lambda: CONTROLLER.execute(
            ExecCommand(
                task=task,
                tool=tool,
                task_type=task_type,
                files=files,
                skill=skill,
                timeout_ms=timeout_ms,
                dry_run=dry_run,
                verbose=verbose,
                state_dir=state_dir,
            ),
            echo=lambda chunk: click.echo(chunk, nl=False),
        ),
    )
    _finish(result, "Execution failed.")


@taskforge.command("propose")
@click.option(
    "--count",
    type=click.IntRange(min=1, max=50),
    default=None,
    help="How many proposals to request. Defaults to TASKFORGE_PROPOSAL_COUNT.",
)
@click.option("--vision", default=None, help="Product vision text.")
@click.option(
    "--vision-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Read the product vision from a file.",
)
@click.option(
    "--recent-task",
    "recent_tasks",
    multiple=True,
    help="Title of recently finished work. Can be repeated.",
)
@click.option("--analysis", default=None, help="Codebase analysis summary for grounding.")
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Timeout per tool execution.",
)
@click.option(
    "--state-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Project state dir.",
)
def propose(  # noqa: PLR0913
    count: int | None,
    vision: str | None,
    vision_file: Path | None,
    recent_tasks: tuple[str, ...],
    analysis: str | None,
    timeout_ms: int | None,
    state_dir: Path | None,
) -> None:
    """Ask the best analysis tool for backlog proposals."""

    if vision is not None and vision_file is not None:
        raise click.UsageError("Use either --vision or --vision-file, not both.")
    result = _guard(
        lambda: CONTROLLER.propose(
            ProposeCommand(
                count=count,
                vision=vision,
                vision_file=vision_file,
                recent_tasks=recent_tasks,
                codebase_analysis=analysis,
                timeout_ms=timeout_ms,
                state_dir=state_dir,
            ),
        ),
    )
    _finish(result, "Proposal run failed.")


def _guard(action: Callable[[], T]) -> T:
    try:
        return action()
    except ConfigurationError as error:
        raise click.ClickException(f"Configuration error: {error}") from error


def _finish(result: CommandResult, failure_message: str) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskforge()
