"""Run one external command to completion under a timeout and an output ceiling.

The runner knows nothing about concurrency limits; ``core.executor`` wraps it
with a ``ConcurrencyLimiter``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psutil

from core.errors import SpawnError
from utils.constants import (
    DEFAULT_KILL_GRACE_SECONDS,
    DEFAULT_MAX_BUFFER_BYTES,
    DEFAULT_TIMEOUT_MS,
    FALLBACK_EXIT_CODE,
    READ_CHUNK_BYTES,
    REBOOT_REQUIRED_EXIT_CODE,
    REBOOT_REQUIRED_RE,
)

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"


class ExecutionState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    BUFFER_EXCEEDED = "buffer_exceeded"


@dataclass(frozen=True)
class ExecutionRequest:
    """Argument vector (without the executable) plus an optional timeout."""

    args: Tuple[str, ...]
    timeout_ms: Optional[int] = None

    @classmethod
    def build(cls, args: Sequence[Any], timeout_ms: Optional[int] = None) -> "ExecutionRequest":
        return cls(
            args=tuple(str(a) for a in args),
            timeout_ms=None if timeout_ms is None else int(timeout_ms),
        )


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    reboot_required: bool
    state: ExecutionState = ExecutionState.COMPLETED
    duration_ms: int = 0

    @property
    def timed_out(self) -> bool:
        return self.state is ExecutionState.TIMED_OUT

    @property
    def buffer_exceeded(self) -> bool:
        return self.state is ExecutionState.BUFFER_EXCEEDED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict"""
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "reboot_required": self.reboot_required,
            "state": self.state.value,
            "timed_out": self.timed_out,
            "buffer_exceeded": self.buffer_exceeded,
            "duration_ms": self.duration_ms,
        }


def is_reboot_required(exit_code: int, stdout: str, stderr: str) -> bool:
    """Best-effort guess whether the command asked for a restart.

    True for the well-known 3010 exit code, or when the combined output
    mentions "3010" or "reboot required" in any casing. This is plain text
    matching on free-form output: false positives and false negatives are
    expected, and localized (non-English) output is not recognized.
    """
    if exit_code == REBOOT_REQUIRED_EXIT_CODE:
        return True
    return bool(REBOOT_REQUIRED_RE.search(f"{stdout or ''}\n{stderr or ''}"))


def classify_result(
    exit_code: Optional[int],
    stdout: str,
    stderr: str,
    *,
    state: ExecutionState = ExecutionState.COMPLETED,
    duration_ms: int = 0,
) -> ExecutionResult:
    """Normalize a finished execution. Pure function of its inputs."""
    forced = state is not ExecutionState.COMPLETED
    if forced or exit_code is None or exit_code < 0:
        # Killed (by us or by a signal): no meaningful exit code.
        code = FALLBACK_EXIT_CODE
    else:
        code = int(exit_code)
    return ExecutionResult(
        success=not forced and code == 0,
        exit_code=code,
        stdout=stdout,
        stderr=stderr,
        reboot_required=is_reboot_required(code, stdout, stderr),
        state=state,
        duration_ms=int(duration_ms),
    )


class _OutputCapture:
    """Shared byte budget for stdout + stderr."""

    def __init__(self, limit: int):
        self.limit = limit
        self.total = 0
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.exceeded = asyncio.Event()

    async def drain(self, stream: Optional[asyncio.StreamReader], sink: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK_BYTES)
            if not chunk:
                return
            room = self.limit - self.total
            if len(chunk) > room:
                if room > 0:
                    sink.extend(chunk[:room])
                    self.total += room
                self.exceeded.set()
                return
            sink.extend(chunk)
            self.total += len(chunk)

    @staticmethod
    def decode(data: bytearray) -> str:
        return bytes(data).decode("utf-8", errors="replace")


class ProcessRunner:
    """Spawn ``executable`` with discrete arguments and normalize the outcome.

    The child inherits the environment and working directory of the host,
    gets no stdin and no terminal. On POSIX it runs in its own session so a
    forced stop takes its whole process group down.
    """

    def __init__(
        self,
        executable: str,
        *,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    ):
        self.executable = str(executable)
        self.default_timeout_ms = max(1, int(default_timeout_ms))
        self.max_buffer_bytes = max(1, int(max_buffer_bytes))
        self.kill_grace_seconds = max(0.1, float(kill_grace_seconds))

    async def run(self, request: ExecutionRequest) -> ExecutionResult:
        timeout_ms = request.timeout_ms if request.timeout_ms is not None else self.default_timeout_ms
        timeout_seconds = max(1, int(timeout_ms)) / 1000.0
        started = time.monotonic()

        logger.debug(
            "Executing command=%s args_count=%d timeout_ms=%d",
            self.executable,
            len(request.args),
            timeout_ms,
        )
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *request.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except OSError as e:
            raise SpawnError(self.executable, request.args, e) from e

        capture = _OutputCapture(self.max_buffer_bytes)
        collector = asyncio.create_task(self._collect(process, capture))
        overflow = asyncio.create_task(capture.exceeded.wait())
        try:
            done, _ = await asyncio.wait(
                {collector, overflow},
                timeout=timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            overflow.cancel()
            await self._terminate(process, collector)
            raise

        overflow.cancel()
        if capture.exceeded.is_set():
            state = ExecutionState.BUFFER_EXCEEDED
        elif collector in done:
            state = ExecutionState.COMPLETED
        else:
            state = ExecutionState.TIMED_OUT

        if state is ExecutionState.COMPLETED:
            exit_code = collector.result()
        else:
            logger.warning(
                "Command %s stopped: %s (pid=%s timeout_ms=%d captured_bytes=%d)",
                self.executable,
                state.value,
                process.pid,
                timeout_ms,
                capture.total,
            )
            await self._terminate(process, collector)
            exit_code = None

        duration_ms = int((time.monotonic() - started) * 1000)
        return classify_result(
            exit_code,
            capture.decode(capture.stdout),
            capture.decode(capture.stderr),
            state=state,
            duration_ms=duration_ms,
        )

    @staticmethod
    async def _collect(process: asyncio.subprocess.Process, capture: _OutputCapture) -> int:
        await asyncio.gather(
            capture.drain(process.stdout, capture.stdout),
            capture.drain(process.stderr, capture.stderr),
        )
        return await process.wait()

    async def _terminate(self, process: asyncio.subprocess.Process, collector: "asyncio.Task[int]") -> None:
        """Kill the child (and its group on POSIX) and reap it."""
        self._kill(process)
        try:
            await asyncio.wait_for(collector, timeout=self.kill_grace_seconds)
            return
        except asyncio.TimeoutError:
            # Something outside the group still holds the pipes open.
            logger.warning("Output pipes of pid=%s still open after kill", process.pid)
        except Exception as e:
            logger.warning("Collector for pid=%s failed after kill: %s", process.pid, e)

        if process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_grace_seconds)
            except asyncio.TimeoutError:
                logger.error("pid=%s was not reaped within %.1fs", process.pid, self.kill_grace_seconds)

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        """SIGKILL the child and every process it started.

        Descendants are listed before anything is killed; once the child is
        gone its children are reparented and can no longer be found.
        """
        descendants = _descendants(process.pid)
        if _POSIX:
            try:
                # start_new_session=True makes the child its own group leader.
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.debug("killpg(%s) failed: %s", process.pid, e)
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        # Catches anything outside the group, and the whole tree on Windows.
        for proc in descendants:
            try:
                proc.kill()
            except psutil.Error:
                continue


def _descendants(pid: int) -> List[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.Error:
        return []
