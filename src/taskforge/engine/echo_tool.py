"""Deterministic local tool for integration tests and demos.

Run as ``python -m taskforge.engine.echo_tool``. It echoes the prompt (or a
canned reply) to stdout, optionally writes to stderr, sleeps and exits with a
chosen code, flushing after every write so callers can observe streaming.
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

VERSION = "1.0.0"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="echo-tool")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--reply-file", required=False)
    parser.add_argument("--stdin", action="store_true", help="Echo stdin instead of the prompt.")
    parser.add_argument("--stderr", default="", help="Text written to stderr after stdout.")
    parser.add_argument("--chunk-delay", type=float, default=0.0)
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("prompt", nargs="?", default="")
    args, _ = parser.parse_known_args(argv)

    if args.version:
        _write(sys.stdout, f"echo-tool {VERSION}\n")
        return 0

    if args.reply_file:
        text = Path(args.reply_file).read_text(encoding="utf-8")
    elif args.stdin:
        text = sys.stdin.read()
    else:
        text = args.prompt

    for line in text.splitlines(keepends=True):
        _write(sys.stdout, line)
        if args.chunk_delay > 0:
            time.sleep(args.chunk_delay)
    if args.stderr:
        _write(sys.stderr, args.stderr)
    if args.sleep > 0:
        time.sleep(args.sleep)
    return args.exit_code


def _write(stream, text: str) -> None:  # noqa: ANN001
    stream.write(text)
    stream.flush()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
