"""Proposal pipeline: ask the best analysis tool for backlog items and parse them."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from taskforge.engine.adapters.base import ToolAdapter
from taskforge.engine.models import (
    ExecutionContext,
    ExecutionResult,
    FailureClass,
    MemoryContext,
    StreamCallbacks,
    TaskType,
)
from taskforge.engine.registry import ToolRegistry

logger = logging.getLogger(__name__)

PROPOSAL_TYPES = ("feature", "bugfix", "refactor", "test", "devops", "docs")
PROPOSAL_PRIORITIES = ("critical", "high", "medium", "low")
MIN_STORY_POINTS = 1
MAX_STORY_POINTS = 13
DEFAULT_STORY_POINTS = 3

_RETRYABLE_FAILURES = frozenset({FailureClass.BACKEND_TRANSIENT})
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", re.DOTALL | re.IGNORECASE)
_LABEL = re.compile(
    r"^[ \t]*(?:(?:[-*]|\d+[.)]|#+)[ \t]*)?(?:\*\*)?"
    r"(title|type|priority|description|story[ _]points|acceptance[ _]criteria)"
    r"(?:\*\*)?[ \t]*:(?:\*\*)?[ \t]*(.*)$",
    re.IGNORECASE,
)
_BULLET = re.compile(r"^[ \t]*[-*][ \t]+(.*)$")
_DIGITS = re.compile(r"\d+")


class ProposalRunStatus(str, Enum):
    OK = "ok"
    NO_TOOL = "no_tool"
    TOOL_FAILED = "tool_failed"


@dataclass(frozen=True, slots=True)
class TaskProposal:
    """One backlog item suggested by a tool."""

    title: str
    description: str
    task_type: str = "feature"
    priority: str = "medium"
    story_points: int = DEFAULT_STORY_POINTS
    acceptance_criteria: tuple[str, ...] = ()


@dataclass(slots=True)
class ProposalRequest:
    """Inputs for one proposal run."""

    project_root: Path
    state_dir: Path
    count: int = 5
    vision: str | None = None
    recent_tasks: tuple[str, ...] = ()
    codebase_analysis: str | None = None
    memory: MemoryContext | None = None
    task_type: TaskType = TaskType.ANALYZE
    timeout_ms: int | None = None
    max_rounds: int = 1
    max_attempts: int = 1


@dataclass(slots=True)
class ProposalRunResult:
    success: bool
    status: ProposalRunStatus
    proposals: list[TaskProposal] = field(default_factory=list)
    error: str | None = None
    tool_name: str | None = None
    dropped: int = 0
    executions: int = 0


class ProposalPipeline:
    """Compose tool executions into a deduplicated list of proposals.

    A failed execution is reported as ``tool_failed`` unless an earlier round
    already produced proposals, in which case those are returned.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def run(
        self,
        request: ProposalRequest,
        callbacks: StreamCallbacks | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ProposalRunResult:
        if request.count <= 0:
            raise ValueError("Proposal count must be > 0.")
        if request.max_rounds <= 0 or request.max_attempts <= 0:
            raise ValueError("Proposal rounds and attempts must be > 0.")
        if request.timeout_ms is not None and request.timeout_ms <= 0:
            raise ValueError("Proposal timeout must be > 0 ms.")

        adapter = self.registry.find_best_tool(request.task_type)
        if adapter is None:
            return ProposalRunResult(
                success=False,
                status=ProposalRunStatus.NO_TOOL,
                error=f"No available tool supports task type {request.task_type.value}.",
            )

        proposals: list[TaskProposal] = []
        seen: set[str] = set()
        dropped = 0
        executions = 0
        for round_index in range(request.max_rounds):
            context = ExecutionContext(
                task=build_proposal_prompt(
                    request,
                    exclude_titles=[item.title for item in proposals],
                ),
                task_type=request.task_type,
                project_root=request.project_root,
                state_dir=request.state_dir,
                memory=request.memory,
            )
            result, attempts = self._execute(
                adapter,
                context,
                request,
                callbacks=callbacks,
                cancel_event=cancel_event,
            )
            executions += attempts
            if not result.success:
                if proposals:
                    logger.warning(
                        "Proposal round %d failed, keeping %d earlier proposals: %s",
                        round_index + 1,
                        len(proposals),
                        result.error,
                    )
                    break
                return ProposalRunResult(
                    success=False,
                    status=ProposalRunStatus.TOOL_FAILED,
                    error=result.error,
                    tool_name=adapter.name,
                    dropped=dropped,
                    executions=executions,
                )

            parsed, round_dropped = parse_proposals(result.output)
            dropped += round_dropped
            for proposal in parsed:
                key = normalize_title(proposal.title)
                if key in seen:
                    continue
                seen.add(key)
                proposals.append(proposal)
            logger.info(
                "Proposal round %d via %s: parsed=%d dropped=%d total=%d",
                round_index + 1,
                adapter.name,
                len(parsed),
                round_dropped,
                len(proposals),
            )
            if len(proposals) >= request.count:
                break
            if cancel_event is not None and cancel_event.is_set():
                break

        if dropped:
            logger.warning("Dropped %d malformed proposal records", dropped)
        return ProposalRunResult(
            success=True,
            status=ProposalRunStatus.OK,
            proposals=proposals[: request.count],
            tool_name=adapter.name,
            dropped=dropped,
            executions=executions,
        )

    def _execute(
        self,
        adapter: ToolAdapter,
        context: ExecutionContext,
        request: ProposalRequest,
        *,
        callbacks: StreamCallbacks | None,
        cancel_event: threading.Event | None,
    ) -> tuple[ExecutionResult, int]:
        attempt = 0
        while True:
            attempt += 1
            result = adapter.execute(
                context,
                callbacks,
                timeout_ms=request.timeout_ms,
                cancel_event=cancel_event,
            )
            if result.success or attempt >= request.max_attempts:
                return result, attempt
            if result.failure_class not in _RETRYABLE_FAILURES:
                return result, attempt
            if cancel_event is not None and cancel_event.is_set():
                return result, attempt
            logger.info(
                "Retrying %s after transient failure (attempt %d/%d): %s",
                adapter.name,
                attempt,
                request.max_attempts,
                result.error,
            )


def build_proposal_prompt(
    request: ProposalRequest,
    *,
    exclude_titles: Iterable[str] = (),
) -> str:
    """Render the tech-lead prompt asking for proposals in a parseable shape."""

    sections = [
        "As a Tech Lead, analyze the project and propose valuable features or improvements.",
    ]
    if request.vision:
        sections.append(f"Product Vision: {request.vision.strip()}")
    if request.codebase_analysis:
        sections.append(f"Codebase Analysis: {request.codebase_analysis.strip()}")
    if request.recent_tasks:
        sections.append(
            "Recent Work:\n" + "\n".join(f"- {title}" for title in request.recent_tasks),
        )
    memory = request.memory
    if memory is not None and memory.patterns:
        sections.append("Known patterns:\n" + "\n---\n".join(memory.patterns))
    if memory is not None and memory.learnings:
        sections.append("Learnings:\n" + "\n---\n".join(memory.learnings))
    excluded = [title for title in exclude_titles if title.strip()]
    if excluded:
        sections.append(
            "Already proposed, do not repeat:\n" + "\n".join(f"- {title}" for title in excluded),
        )
    sections.append(
        f"Propose {request.count} high-value items considering user impact, "
        "technical debt, performance, security and developer experience.",
    )
    sections.append(
        "Respond with JSON "
        '{"proposals": [{"title", "type", "priority", "description", '
        '"story_points", "acceptance_criteria"}]} or format each item as:\n'
        "- Title: [title]\n"
        f"- Type: [{'|'.join(PROPOSAL_TYPES)}]\n"
        f"- Priority: [{'|'.join(PROPOSAL_PRIORITIES)}]\n"
        "- Description: [description]\n"
        f"- Story Points: [{MIN_STORY_POINTS}-{MAX_STORY_POINTS}]\n"
        "- Acceptance Criteria:\n"
        "  - [criterion 1]\n"
        "  - [criterion 2]",
    )
    return "\n\n".join(sections)


def parse_proposals(output: str) -> tuple[list[TaskProposal], int]:
    """Parse proposals from tool output; return them with the dropped record count."""

    text = output.strip()
    if not text:
        return [], 0

    items = _json_items(text)
    records: list[dict[str, object]] = []
    dropped = 0
    if items is not None:
        for item in items:
            if isinstance(item, dict):
                records.append(item)
            else:
                dropped += 1
    else:
        records = _text_records(text)

    proposals: list[TaskProposal] = []
    for record in records:
        proposal = _build_proposal(record)
        if proposal is None:
            dropped += 1
            continue
        proposals.append(proposal)
    return proposals, dropped


def normalize_title(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", title.lower()).strip()


def _json_items(text: str) -> list[object] | None:
    for candidate in _json_candidates(text):
        payload = _try_load(candidate)
        if isinstance(payload, dict) and isinstance(payload.get("proposals"), list):
            return payload["proposals"]
        if isinstance(payload, list):
            return payload
    return None


def _json_candidates(text: str) -> list[str]:
    candidates = [text]
    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        candidates.append(fenced.group(1))
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    return candidates


def _try_load(raw: str) -> object | None:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def _text_records(text: str) -> list[dict[str, object]]:
    records: list[dict[str, object]] = []
    current: dict[str, object] | None = None
    label: str | None = None
    for line in text.splitlines():
        match = _LABEL.match(line)
        if match is not None:
            label = match.group(1).lower().replace(" ", "_")
            value = match.group(2).strip()
            # Fields seen before any title form an untitled record that gets dropped.
            if label == "title" or current is None:
                current = {}
                records.append(current)
            if label == "acceptance_criteria":
                current[label] = [value] if value else []
            else:
                current[label] = value
            continue
        if not line.strip():
            label = None
            continue
        if current is None or label is None:
            continue
        if label == "acceptance_criteria":
            bullet = _BULLET.match(line)
            criteria = current.setdefault(label, [])
            if isinstance(criteria, list):
                criteria.append(bullet.group(1).strip() if bullet else line.strip())
        elif label == "description":
            current[label] = f"{current.get(label, '')}\n{line.strip()}".strip()
    return records


def _build_proposal(record: dict[str, object]) -> TaskProposal | None:
    title = _text_value(record.get("title"))
    description = _text_value(record.get("description"))
    if not title or not description:
        return None
    return TaskProposal(
        title=title,
        description=description,
        task_type=_choice(record.get("type", record.get("task_type")), PROPOSAL_TYPES, "feature"),
        priority=_choice(record.get("priority"), PROPOSAL_PRIORITIES, "medium"),
        story_points=_story_points(
            record.get("story_points", record.get("storyPoints", record.get("points"))),
        ),
        acceptance_criteria=_criteria(
            record.get("acceptance_criteria", record.get("acceptanceCriteria")),
        ),
    )


def _text_value(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().strip("[]").strip()


def _choice(value: object, allowed: tuple[str, ...], default: str) -> str:
    normalized = _text_value(value).lower()
    return normalized if normalized in allowed else default


def _story_points(value: object) -> int:
    if isinstance(value, bool):
        return DEFAULT_STORY_POINTS
    if isinstance(value, int | float):
        points = int(value)
    else:
        match = _DIGITS.search(value) if isinstance(value, str) else None
        if match is None:
            return DEFAULT_STORY_POINTS
        points = int(match.group(0))
    return max(MIN_STORY_POINTS, min(MAX_STORY_POINTS, points))


def _criteria(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.splitlines()
    if not isinstance(value, list):
        return ()
    criteria: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        cleaned = item.strip().lstrip("-*").strip()
        if cleaned:
            criteria.append(cleaned)
    return tuple(criteria)
