"""Subprocess execution with bounded output, timeouts and live streaming.

stdout and stderr are drained by two reader threads so that a child which
fills one pipe while the parent waits on the other cannot deadlock. The
timeout races the readers; when it wins, the child's process group is
killed and the readers are joined before the exit status is collected.
"""

from __future__ import annotations

import codecs
import os
import signal
import subprocess
import sys
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, TYPE_CHECKING, Callable, Mapping, Sequence, TextIO

from ..errors import ExecutionError
from ..exit_codes import TIMEOUT_EXIT_CODE
from .hashing import compute_hash
from .language import language_from_path, runtime_for
from .logging import log_event

if TYPE_CHECKING:
    from .context import RunContext

DEFAULT_TIMEOUT_MS = 120_000
MAX_OUTPUT_BYTES = 10 * 1024
_READ_CHUNK = 64 * 1024
_EXIT_GRACE_SECONDS = 1.0

CHILD_ENV_OVERRIDES: dict[str, str] = {
    "CI": "1",
    "NO_COLOR": "1",
    "FORCE_COLOR": "0",
}

Spawner = Callable[[Sequence[str], Mapping[str, str], Path | None], "subprocess.Popen[bytes]"]


def spawn_process(cmd: Sequence[str], env: Mapping[str, str], cwd: Path | None = None) -> subprocess.Popen[bytes]:
    return subprocess.Popen(
        list(cmd),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=dict(env),
        cwd=cwd,
        start_new_session=(os.name == "posix"),
    )


def child_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ)
    env.update(CHILD_ENV_OVERRIDES)
    if extra:
        env.update(extra)
    return env


def capped_output(kept: bytes, total: int, limit: int = MAX_OUTPUT_BYTES) -> str:
    text = kept[:limit].decode("utf-8", errors="replace")
    if total <= limit:
        return text
    return text + f"\n... [truncated, {total - limit} bytes omitted]"


def truncate_output(data: bytes, limit: int = MAX_OUTPUT_BYTES) -> str:
    return capped_output(data[:limit], len(data), limit)


class BoundedCapture:
    """Keeps the first ``limit`` bytes of a stream and counts the rest."""

    def __init__(self, limit: int = MAX_OUTPUT_BYTES) -> None:
        self.limit = limit
        self.kept = bytearray()
        self.total = 0

    def feed(self, chunk: bytes) -> None:
        self.total += len(chunk)
        room = self.limit - len(self.kept)
        if room > 0:
            self.kept.extend(chunk[:room])

    def render(self) -> str:
        return capped_output(bytes(self.kept), self.total, self.limit)


def timeout_message(timeout_ms: int) -> str:
    return f"Execution timed out after {timeout_ms}ms"


def signal_exit_code(returncode: int) -> int:
    """Map ``Popen``'s ``-N`` for signal deaths onto the shell's ``128 + N``.

    Negative codes are reserved for the timeout sentinel once recorded.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool


@dataclass(frozen=True)
class ScriptRun:
    hash: str
    last_run: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool

    @property
    def kind(self) -> str:
        return "script"


def _pump(stream: IO[bytes], sink: BoundedCapture, tee: TextIO | None) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        while True:
            chunk = stream.read1(_READ_CHUNK) if hasattr(stream, "read1") else stream.read(_READ_CHUNK)
            if not chunk:
                break
            sink.feed(chunk)
            if tee is not None:
                tee.write(decoder.decode(chunk))
                tee.flush()
        if tee is not None:
            tail = decoder.decode(b"", final=True)
            if tail:
                tee.write(tail)
                tee.flush()
    finally:
        stream.close()


def _terminate(proc: subprocess.Popen[bytes]) -> None:
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    try:
        proc.kill()
    except ProcessLookupError:
        pass


def run_command(
    cmd: Sequence[str],
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    max_output_bytes: int = MAX_OUTPUT_BYTES,
    stream: bool = False,
    spawn: Spawner | None = None,
) -> CommandResult:
    spawner = spawn or spawn_process
    started = time.monotonic()
    try:
        proc = spawner(cmd, env if env is not None else child_env(), cwd)
    except OSError as exc:
        raise ExecutionError(f"failed to start `{cmd[0]}`: {exc.strerror or exc}", list(cmd)) from exc

    out_cap = BoundedCapture(max_output_bytes)
    err_cap = BoundedCapture(max_output_bytes)
    timeout_s = timeout_ms / 1000
    timed_out = False
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="exv-pipe") as pool:
        try:
            readers = [
                pool.submit(_pump, proc.stdout, out_cap, sys.stdout if stream else None),
                pool.submit(_pump, proc.stderr, err_cap, sys.stderr if stream else None),
            ]
            _, pending = wait(readers, timeout=timeout_s)
            if pending:
                timed_out = True
                _terminate(proc)
            for reader in readers:
                reader.result()
            if not timed_out:
                remaining = timeout_s - (time.monotonic() - started)
                try:
                    exit_code = proc.wait(timeout=max(remaining, _EXIT_GRACE_SECONDS))
                except subprocess.TimeoutExpired:
                    timed_out = True
                    _terminate(proc)
            if timed_out:
                proc.wait()
                exit_code = TIMEOUT_EXIT_CODE
        except BaseException:
            # The child's session never receives the terminal's SIGINT.
            _terminate(proc)
            proc.wait()
            raise
    duration_ms = int((time.monotonic() - started) * 1000)

    if timed_out:
        return CommandResult(TIMEOUT_EXIT_CODE, "", timeout_message(timeout_ms), duration_ms, True)
    return CommandResult(
        exit_code=signal_exit_code(exit_code),
        stdout=out_cap.render(),
        stderr=err_cap.render(),
        duration_ms=duration_ms,
        timed_out=False,
    )


def script_command(script: Path, args: Sequence[str], shell: Sequence[str], script_runtime: Sequence[str]) -> list[str]:
    runtime = runtime_for(language_from_path(script), tuple(shell), tuple(script_runtime))
    command = runtime.command if runtime is not None else tuple(script_runtime)
    return [*command, str(script), *args]


def _rule() -> str:
    return "=" * 60


class ScriptRunner:
    """Runs one script file and describes the outcome as a cacheable record."""

    def __init__(self, ctx: RunContext, spawn: Spawner | None = None) -> None:
        self.ctx = ctx
        self._spawn = spawn or spawn_process

    def run(self, script: Path, args: Sequence[str] = (), silent: bool = False, timeout_ms: int | None = None) -> ScriptRun:
        cfg = self.ctx.config
        limit_ms = timeout_ms if timeout_ms is not None else cfg.timeout_ms
        content_hash = compute_hash(script.read_bytes())
        cmd = script_command(script, args, cfg.shell, cfg.script_runtime)

        if not silent:
            print(f"\n{_rule()}")
            print(f"Running: {script.name}")
            print(f"Hash: {content_hash}")
            print(f"Timeout: {limit_ms / 1000:g}s")
            print(f"{_rule()}\n", flush=True)
        log_event(self.ctx, "debug", "run", "spawn", command=" ".join(cmd), timeout_ms=limit_ms)

        result = run_command(
            cmd,
            timeout_ms=limit_ms,
            env=child_env(),
            max_output_bytes=cfg.max_output_bytes,
            stream=not silent,
            spawn=self._spawn,
        )

        if not silent:
            print(f"\n{_rule()}")
            if result.timed_out:
                print(f"TIMED OUT after {result.duration_ms}ms")
            else:
                print(f"Completed in {result.duration_ms}ms with exit code {result.exit_code}")
            print(f"{_rule()}\n")

        return ScriptRun(
            hash=content_hash,
            last_run=datetime.now(timezone.utc).isoformat(),
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=result.duration_ms,
            timed_out=result.timed_out,
        )
