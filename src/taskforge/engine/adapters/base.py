"""Tool adapter interface and the subprocess-backed base implementation."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from taskforge.engine.failure_classifier import classify_tool_failure
from taskforge.engine.models import (
    ConfigurationError,
    ExecutionArtifacts,
    ExecutionContext,
    ExecutionResult,
    FailureClass,
    StreamCallbacks,
    TaskType,
    ToolDescriptor,
)
from taskforge.engine.process import (
    DEFAULT_TERMINATE_GRACE_SECONDS,
    DEFAULT_TIMEOUT_MS,
    ProcessOutcome,
    ProcessRequest,
    run_process,
)
from taskforge.engine.usage import extract_usage

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0
MAX_PROMPT_DECISIONS = 5

_VERSION = re.compile(r"(\d+(?:\.\d+)+)")
_CODE_BLOCK = re.compile(r"```[^\n`]*\n(.*?)```", re.DOTALL)
_ERROR_PREVIEW_CHARS = 400


@runtime_checkable
class ToolAdapter(Protocol):
    """Protocol implemented by every tool adapter."""

    descriptor: ToolDescriptor

    @property
    def name(self) -> str:
        """Unique tool id."""

    def check_availability(self) -> bool:
        """Return whether the tool can be invoked right now. Never raises."""

    def execute(
        self,
        context: ExecutionContext,
        callbacks: StreamCallbacks | None = None,
        *,
        timeout_ms: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionResult:
        """Run the tool for one task and return the normalized result."""


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    """Tool-specific command derived from an execution context."""

    argv: tuple[str, ...]
    stdin_text: str | None = None


class CliToolAdapter(ABC):
    """Adapter for a tool driven through a single command-line executable.

    Subclasses set the ``default_*`` class attributes and implement
    :meth:`build_command`. They may also override :meth:`format_task`,
    :attr:`artifact_pattern` and :meth:`detect_logical_failure` to match the
    tool's prompt and output conventions.
    """

    default_name: str = ""
    default_executable: str = ""
    default_capabilities: frozenset[TaskType] = frozenset()
    default_priority: int = 50
    default_install_hint: str = ""
    probe_args: tuple[tuple[str, ...], ...] = (("--version",),)
    artifact_pattern: re.Pattern[str] | None = None

    def __init__(  # noqa: PLR0913
        self,
        *,
        name: str | None = None,
        executable: str | None = None,
        capabilities: Iterable[TaskType | str] | None = None,
        priority: int | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS,
        env: Mapping[str, str] | None = None,
        install_hint: str | None = None,
    ) -> None:
        self.descriptor = ToolDescriptor(
            name=name or self.default_name,
            capabilities=frozenset(
                self.default_capabilities if capabilities is None else capabilities,
            ),
            priority=self.default_priority if priority is None else priority,
        )
        self.executable = (executable or self.default_executable).strip()
        if not self.executable:
            raise ConfigurationError(f"Tool {self.descriptor.name!r} has an empty executable.")
        if timeout_ms <= 0:
            raise ConfigurationError(f"Tool {self.descriptor.name!r} timeout must be > 0 ms.")
        if probe_timeout_seconds <= 0:
            raise ConfigurationError(
                f"Tool {self.descriptor.name!r} probe timeout must be > 0 seconds.",
            )
        self.timeout_ms = timeout_ms
        self.probe_timeout_seconds = probe_timeout_seconds
        self.terminate_grace_seconds = terminate_grace_seconds
        self.env = dict(env) if env else None
        self.install_hint = self.default_install_hint if install_hint is None else install_hint

    @property
    def name(self) -> str:
        return self.descriptor.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, executable={self.executable!r})"

    # -- availability ---------------------------------------------------------

    def check_availability(self) -> bool:
        """Probe the executable with its own short timeout."""

        resolved = self._resolve_executable()
        if resolved is None:
            logger.debug("%s: executable %r not found in PATH", self.name, self.executable)
            return False
        for args in self.probe_args:
            completed = self._run_probe(resolved, args)
            if completed is not None and completed.returncode == 0:
                return True
        return False

    def get_version(self) -> str | None:
        """Return the version reported by the tool, if it reports one."""

        resolved = self._resolve_executable()
        if resolved is None:
            return None
        completed = self._run_probe(resolved, self.probe_args[0])
        if completed is None or completed.returncode != 0:
            return None
        match = _VERSION.search(f"{completed.stdout}\n{completed.stderr}")
        return match.group(1) if match else None

    def _resolve_executable(self) -> str | None:
        return shutil.which(self.executable)

    def _run_probe(
        self,
        resolved: str,
        args: tuple[str, ...],
    ) -> subprocess.CompletedProcess[str] | None:
        try:
            return subprocess.run(  # noqa: S603
                [resolved, *args],
                check=False,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=self.probe_timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            logger.debug("%s: probe %s timed out", self.name, " ".join(args))
        except (OSError, ValueError) as error:
            logger.debug("%s: probe %s failed: %s", self.name, " ".join(args), error)
        return None

    # -- invocation -----------------------------------------------------------

    @abstractmethod
    def build_command(self, context: ExecutionContext) -> ToolInvocation:
        """Translate the generic context into this tool's command line."""

    def format_task(self, context: ExecutionContext) -> str:
        """Build the prompt text handed to the tool."""

        prompt = context.task
        if context.skill is not None:
            prompt = f"[Skill: {context.skill}]\n\n{prompt}"
        if context.files:
            prompt += "\n\nFiles to work with:\n" + "\n".join(context.files)
        decisions = recent_decisions(context)
        if decisions:
            prompt += "\n\nProject decisions to consider:\n" + "\n---\n".join(decisions)
        return prompt

    def execute(
        self,
        context: ExecutionContext,
        callbacks: StreamCallbacks | None = None,
        *,
        timeout_ms: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionResult:
        """Run the tool for one task; every tool failure is returned as data.

        A non-positive ``timeout_ms`` is a caller error and raises
        :class:`ConfigurationError` before anything is spawned.
        """

        effective_timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        if effective_timeout_ms <= 0:
            raise ConfigurationError(
                f"Tool {self.name!r} timeout must be > 0 ms, got {effective_timeout_ms}.",
            )
        hooks = callbacks or StreamCallbacks()
        started = time.monotonic()

        resolved = self._resolve_executable() if self.check_availability() else None
        if resolved is None:
            message = f"{self.name}: {self.executable} is not available"
            if self.install_hint:
                message += f". Install with: {self.install_hint}"
            if hooks.on_start is not None:
                hooks.on_start()
            if hooks.on_error is not None:
                hooks.on_error(message)
            return ExecutionResult(
                success=False,
                output="",
                duration_ms=int((time.monotonic() - started) * 1000),
                tool_name=self.name,
                error=message,
                failure_class=FailureClass.UNAVAILABLE,
            )

        invocation = self.build_command(context)
        outcome = run_process(
            ProcessRequest(
                argv=(resolved, *invocation.argv[1:]),
                timeout_ms=effective_timeout_ms,
                cwd=context.project_root,
                stdin_text=invocation.stdin_text,
                env=self.env,
                cancel_event=cancel_event,
                terminate_grace_seconds=self.terminate_grace_seconds,
            ),
            hooks,
        )
        result = self._to_result(outcome, timeout_ms=effective_timeout_ms)
        logger.info(
            "%s finished: success=%s duration_ms=%d failure_class=%s",
            self.name,
            result.success,
            result.duration_ms,
            result.failure_class.value if result.failure_class else "-",
        )
        return result

    # -- output interpretation -----------------------------------------------

    def parse_artifacts(self, output: str) -> ExecutionArtifacts:
        """Collect file paths and fenced code blocks the tool reported."""

        files: list[str] = []
        if self.artifact_pattern is not None:
            for match in self.artifact_pattern.finditer(output):
                path = match.group("path").strip().rstrip(".,;:").strip("`'\"")
                if path and path not in files:
                    files.append(path)
        code_blocks = tuple(
            block.strip() for block in _CODE_BLOCK.findall(output) if block.strip()
        )
        return ExecutionArtifacts(files=tuple(files), code_blocks=code_blocks)

    def detect_logical_failure(self, output: str) -> str | None:  # noqa: ARG002
        """Return a failure message when a zero exit still means the task failed."""

        return None

    def _to_result(self, outcome: ProcessOutcome, *, timeout_ms: int) -> ExecutionResult:
        common = {
            "output": outcome.output,
            "duration_ms": outcome.duration_ms,
            "tool_name": self.name,
            "exit_code": outcome.exit_code,
        }
        if outcome.spawn_error is not None:
            return ExecutionResult(
                success=False,
                error=f"{self.name}: {outcome.spawn_error}",
                failure_class=FailureClass.SPAWN_FAILED,
                **common,
            )

        artifacts = self.parse_artifacts(outcome.output)
        tokens_used = extract_usage(tool=self.name, output=outcome.output).total_tokens
        common.update(artifacts=artifacts, tokens_used=tokens_used)

        if outcome.interrupted:
            reason = (
                "execution canceled"
                if outcome.canceled
                else f"execution timed out after {timeout_ms} ms"
            )
            return ExecutionResult(
                success=False,
                error=f"{self.name}: Timeout: {reason}",
                failure_class=FailureClass.TIMEOUT,
                **common,
            )

        if outcome.exit_code != 0:
            classification = classify_tool_failure(
                tool=self.name,
                exit_code=outcome.exit_code if outcome.exit_code is not None else -1,
                output=outcome.output,
            )
            message = f"{self.name}: exited with code {outcome.exit_code}"
            preview = _error_preview(outcome.output)
            if preview:
                message += f": {preview}"
            return ExecutionResult(
                success=False,
                error=message,
                failure_class=classification.failure_class,
                **common,
            )

        logical_failure = self.detect_logical_failure(outcome.output)
        if logical_failure is not None:
            return ExecutionResult(
                success=False,
                error=f"{self.name}: {logical_failure}",
                failure_class=FailureClass.TOOL_REPORTED,
                **common,
            )

        return ExecutionResult(success=True, **common)


def recent_decisions(context: ExecutionContext, *, limit: int = MAX_PROMPT_DECISIONS) -> list[str]:
    """Return the most recent decision snippets worth putting into a prompt."""

    if context.memory is None:
        return []
    decisions = [item.strip() for item in context.memory.decisions if item.strip()]
    return decisions[-limit:]


def _error_preview(output: str) -> str:
    compact = output.strip()
    if len(compact) <= _ERROR_PREVIEW_CHARS:
        return compact
    return "..." + compact[-_ERROR_PREVIEW_CHARS:]
