"""Supervised subprocess execution with streaming output callbacks."""

from __future__ import annotations

import codecs
import logging
import os
import queue
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from taskforge.engine.models import StreamCallbacks

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_TERMINATE_GRACE_SECONDS = 2.0

_READ_CHUNK_BYTES = 4096
_POLL_INTERVAL_SECONDS = 0.05


@dataclass(frozen=True, slots=True)
class ProcessRequest:
    """Fully resolved external command plus supervision limits."""

    argv: tuple[str, ...]
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    cwd: Path | None = None
    stdin_text: str | None = None
    env: Mapping[str, str] | None = None
    cancel_event: threading.Event | None = None
    terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """What happened to one supervised process."""

    exit_code: int | None
    output: str
    duration_ms: int
    pid: int | None = None
    timed_out: bool = False
    canceled: bool = False
    spawn_error: str | None = None
    stream_errors: tuple[str, ...] = ()

    @property
    def interrupted(self) -> bool:
        return self.timed_out or self.canceled

    @property
    def success(self) -> bool:
        return self.spawn_error is None and not self.interrupted and self.exit_code == 0


@dataclass(frozen=True, slots=True)
class _StreamEvent:
    stream: str
    text: str | None = None
    error: str | None = None

    @property
    def is_eof(self) -> bool:
        return self.text is None and self.error is None


def run_process(  # noqa: C901
    request: ProcessRequest,
    callbacks: StreamCallbacks | None = None,
) -> ProcessOutcome:
    """Run one external process to completion, timeout or cancellation.

    ``on_start`` fires once before anything else. Standard output and standard
    error are both delivered through ``on_output`` in arrival order, and the
    returned ``output`` is exactly the concatenation of the delivered chunks.
    After a timeout or cancellation no further callbacks are made. The process
    (and, on POSIX, its whole process group) is reclaimed before returning,
    including when a callback raises.
    """

    if not request.argv:
        raise ValueError("Process argv must not be empty.")
    if request.timeout_ms <= 0:
        raise ValueError("Process timeout must be > 0 ms.")

    hooks = callbacks or StreamCallbacks()
    _invoke(hooks.on_start)

    started = time.monotonic()
    if request.cwd is not None and not Path(request.cwd).is_dir():
        return _spawn_failure(
            f"Working directory does not exist: {request.cwd}",
            started=started,
            hooks=hooks,
        )

    env: dict[str, str] | None = None
    if request.env is not None:
        env = os.environ.copy()
        env.update(request.env)

    try:
        process = subprocess.Popen(  # noqa: S603
            list(request.argv),
            cwd=request.cwd,
            env=env,
            stdin=subprocess.PIPE if request.stdin_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            start_new_session=os.name != "nt",
        )
    except FileNotFoundError:
        return _spawn_failure(
            f"Executable not found: {request.argv[0]}",
            started=started,
            hooks=hooks,
        )
    except OSError as error:
        return _spawn_failure(
            f"Failed to start {request.argv[0]}: {error}",
            started=started,
            hooks=hooks,
        )

    logger.debug("Spawned pid=%s: %s", process.pid, request.argv[0])
    events: queue.Queue[_StreamEvent] = queue.Queue()
    readers = [
        _start_reader(process.stdout, "stdout", events),
        _start_reader(process.stderr, "stderr", events),
    ]
    feeder = (
        _start_stdin_feeder(process.stdin, request.stdin_text)
        if request.stdin_text is not None
        else None
    )

    deadline = started + request.timeout_ms / 1000
    parts: list[str] = []
    stream_errors: list[str] = []
    open_streams = len(readers)
    timed_out = False
    canceled = False
    finished = started
    try:
        while open_streams > 0 or process.poll() is None:
            if request.cancel_event is not None and request.cancel_event.is_set():
                canceled = True
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                timed_out = True
                break
            try:
                event = events.get(timeout=min(_POLL_INTERVAL_SECONDS, remaining))
            except queue.Empty:
                continue
            if event.is_eof:
                open_streams -= 1
            elif event.error is not None:
                message = f"Failed reading {event.stream}: {event.error}"
                stream_errors.append(message)
                _invoke(hooks.on_error, message)
            else:
                parts.append(event.text or "")
                _invoke(hooks.on_output, event.text or "")
    finally:
        if process.poll() is None:
            _terminate_process(process, grace_seconds=request.terminate_grace_seconds)
        finished = time.monotonic()
        _reclaim_streams(
            process,
            readers=readers,
            feeder=feeder,
            grace_seconds=request.terminate_grace_seconds,
        )

    if timed_out:
        logger.info("pid=%s timed out after %d ms", process.pid, request.timeout_ms)
    elif canceled:
        logger.info("pid=%s canceled", process.pid)

    return ProcessOutcome(
        exit_code=process.returncode,
        output="".join(parts),
        duration_ms=_elapsed_ms(started, finished),
        pid=process.pid,
        timed_out=timed_out,
        canceled=canceled,
        stream_errors=tuple(stream_errors),
    )


def _spawn_failure(message: str, *, started: float, hooks: StreamCallbacks) -> ProcessOutcome:
    _invoke(hooks.on_error, message)
    return ProcessOutcome(
        exit_code=None,
        output="",
        duration_ms=_elapsed_ms(started, time.monotonic()),
        spawn_error=message,
    )


def _start_reader(
    stream: IO[bytes] | None,
    name: str,
    events: queue.Queue[_StreamEvent],
) -> threading.Thread:
    thread = threading.Thread(
        target=_pump_stream,
        args=(stream, name, events),
        daemon=True,
        name=f"taskforge-{name}-reader",
    )
    thread.start()
    return thread


def _pump_stream(
    stream: IO[bytes] | None,
    name: str,
    events: queue.Queue[_StreamEvent],
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        if stream is None:
            return
        while True:
            data = stream.read(_READ_CHUNK_BYTES)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                events.put(_StreamEvent(stream=name, text=text))
        tail = decoder.decode(b"", final=True)
        if tail:
            events.put(_StreamEvent(stream=name, text=tail))
    except (OSError, ValueError) as error:
        events.put(_StreamEvent(stream=name, error=str(error)))
    finally:
        events.put(_StreamEvent(stream=name))


def _start_stdin_feeder(stream: IO[bytes] | None, text: str) -> threading.Thread:
    thread = threading.Thread(
        target=_feed_stdin,
        args=(stream, text),
        daemon=True,
        name="taskforge-stdin-feeder",
    )
    thread.start()
    return thread


def _feed_stdin(stream: IO[bytes] | None, text: str) -> None:
    if stream is None:
        return
    try:
        payload = memoryview(text.encode("utf-8"))
        while payload:
            # Unbuffered pipes may accept only part of the payload per write.
            written = stream.write(payload) or 0
            payload = payload[written:]
    except (OSError, ValueError):
        # The tool exited or closed stdin without reading the payload.
        logger.debug("stdin payload not fully consumed", exc_info=True)
    finally:
        try:
            stream.close()
        except OSError:
            pass


def _reclaim_streams(
    process: subprocess.Popen[bytes],
    *,
    readers: list[threading.Thread],
    feeder: threading.Thread | None,
    grace_seconds: float,
) -> None:
    """Join the helper threads for up to ``grace_seconds``, then close every pipe.

    A helper still alive at the deadline is left behind as a daemon thread;
    a descendant that escaped the process group can keep the write end open.
    """

    deadline = time.monotonic() + grace_seconds
    for thread in [*readers, *([feeder] if feeder is not None else [])]:
        thread.join(timeout=max(0.0, deadline - time.monotonic()))
        if thread.is_alive():
            logger.warning(
                "%s still attached to pid=%s output after termination",
                thread.name,
                process.pid,
            )
    for stream in (process.stdin, process.stdout, process.stderr):
        if stream is None:
            continue
        try:
            stream.close()
        except OSError:
            logger.debug("Failed closing pipe of pid=%s", process.pid, exc_info=True)


def _terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float) -> None:
    _signal_process_group(process, force=False)
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        _signal_process_group(process, force=True)
        try:
            process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("pid=%s did not exit after SIGKILL", process.pid)
        return
    # Children that ignored SIGTERM may still hold the output pipes.
    _signal_process_group(process, force=True)


def _signal_process_group(process: subprocess.Popen[bytes], *, force: bool) -> None:
    try:
        if os.name == "nt":
            if force:
                process.kill()
            else:
                process.terminate()
            return
        os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
    except OSError:
        return


def _invoke(hook: Callable[..., None] | None, *args: str) -> None:
    if hook is not None:
        hook(*args)


def _elapsed_ms(started: float, finished: float) -> int:
    return max(0, int((finished - started) * 1000))
