"""Read project memory snippets from the state directory."""

from __future__ import annotations

import logging
from pathlib import Path

from taskforge.engine.models import MemoryContext

logger = logging.getLogger(__name__)

MEMORY_DIR_NAME = "memory"
MEMORY_KINDS = ("decisions", "patterns", "learnings")
DEFAULT_MEMORY_LIMIT = 5


def load_memory(state_dir: Path, *, limit: int = DEFAULT_MEMORY_LIMIT) -> MemoryContext | None:
    """Load the most recent snippets of each kind, newest last.

    Files are ordered by name, so date-prefixed names sort chronologically.
    Returns ``None`` when the project has no memory directory at all.
    """

    memory_dir = state_dir / MEMORY_DIR_NAME
    if not memory_dir.is_dir():
        return None
    if limit <= 0:
        return MemoryContext()

    snippets = {kind: _read_kind(memory_dir / kind, limit=limit) for kind in MEMORY_KINDS}
    memory = MemoryContext(**snippets)
    logger.debug(
        "Loaded memory from %s: decisions=%d patterns=%d learnings=%d",
        memory_dir,
        len(memory.decisions),
        len(memory.patterns),
        len(memory.learnings),
    )
    return memory


def _read_kind(directory: Path, *, limit: int) -> tuple[str, ...]:
    if not directory.is_dir():
        return ()
    files = sorted(path for path in directory.iterdir() if path.is_file())
    snippets: list[str] = []
    for path in files[-limit:]:
        try:
            text = path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as error:
            logger.warning("Skipping unreadable memory file %s: %s", path, error)
            continue
        if text:
            snippets.append(text)
    return tuple(snippets)
