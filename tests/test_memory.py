from __future__ import annotations

from pathlib import Path

import allure

from taskforge.engine.memory import load_memory

pytestmark = [
    allure.epic("Tool Execution"),
    allure.feature("Grounding Memory"),
]


def _write(directory: Path, name: str, text: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_text(text, "utf-8")


def test_missing_memory_dir_returns_none(tmp_path: Path) -> None:
    assert load_memory(tmp_path / ".taskforge") is None


def test_loads_most_recent_snippets_by_file_name(tmp_path: Path) -> None:
    state_dir = tmp_path / ".taskforge"
    decisions = state_dir / "memory" / "decisions"
    for day in range(1, 8):
        _write(decisions, f"2026-01-0{day}.md", f"decision {day}\n")
    _write(state_dir / "memory" / "patterns", "repository.yaml", "name: repository\n")

    memory = load_memory(state_dir, limit=3)

    assert memory is not None
    assert memory.decisions == ("decision 5", "decision 6", "decision 7")
    assert memory.patterns == ("name: repository",)
    assert memory.learnings == ()
    assert not memory.is_empty


def test_unreadable_and_blank_files_are_skipped(tmp_path: Path) -> None:
    state_dir = tmp_path / ".taskforge"
    learnings = state_dir / "memory" / "learnings"
    _write(learnings, "a.md", "keep me")
    _write(learnings, "b.md", "   \n")
    learnings.joinpath("c.bin").write_bytes(b"\xff\xfe\xfa")
    (learnings / "nested").mkdir()

    memory = load_memory(state_dir)

    assert memory is not None
    assert memory.learnings == ("keep me",)


def test_zero_limit_yields_empty_memory(tmp_path: Path) -> None:
    state_dir = tmp_path / ".taskforge"
    _write(state_dir / "memory" / "decisions", "one.md", "decision")

    memory = load_memory(state_dir, limit=0)

    assert memory is not None
    assert memory.is_empty
