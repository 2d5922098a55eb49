"""Bounded-concurrency execution gateway.

``CommandExecutor.execute`` is the single call shape the dispatch layer uses:
acquire a slot, run the command, release the slot, report the outcome.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Optional, Sequence

from core.errors import SpawnError
from core.limiter import ConcurrencyLimiter
from core.process_runner import ExecutionRequest, ExecutionResult, ProcessRunner

logger = logging.getLogger(__name__)


class CommandExecutor:
    def __init__(
        self,
        runner: ProcessRunner,
        limiter: ConcurrencyLimiter,
        event_logger: Optional[logging.Logger] = None,
    ):
        self.runner = runner
        self.limiter = limiter
        self.event_logger = event_logger

    @property
    def executable(self) -> str:
        return self.runner.executable

    async def execute(
        self,
        args: Sequence[str],
        timeout_ms: Optional[int] = None,
        *,
        tool: Optional[str] = None,
    ) -> ExecutionResult:
        """Run the executable with ``args`` once a concurrency slot is free.

        Returns the classified result for every run, including timeouts and
        output overflow. Raises ``SpawnError`` when the executable cannot be
        launched. Never retries.
        """
        request = ExecutionRequest.build(args, timeout_ms)
        queued_at = time.monotonic()
        async with self.limiter:
            wait_ms = int((time.monotonic() - queued_at) * 1000)
            try:
                result = await self.runner.run(request)
            except SpawnError as e:
                self._emit_event(
                    {
                        "tool": tool,
                        "args_count": len(request.args),
                        "wait_ms": wait_ms,
                        "ok": False,
                        "error": "spawn_error",
                        "detail": str(e),
                    }
                )
                raise

        if not result.success:
            logger.info(
                "Command failed tool=%s exit_code=%d state=%s duration_ms=%d",
                tool,
                result.exit_code,
                result.state.value,
                result.duration_ms,
            )
        self._emit_event(
            {
                "tool": tool,
                "args_count": len(request.args),
                "wait_ms": wait_ms,
                "duration_ms": result.duration_ms,
                "exit_code": result.exit_code,
                "ok": result.success,
                "reboot_required": result.reboot_required,
                "timed_out": result.timed_out,
                "buffer_exceeded": result.buffer_exceeded,
            }
        )
        return result

    def _emit_event(self, event: dict) -> None:
        """Best-effort JSONL outcome event; never affects the result."""
        if self.event_logger is None:
            return
        try:
            payload = {"ts": time.time(), **event}
            self.event_logger.info(json.dumps(payload, ensure_ascii=False, sort_keys=True))
        except Exception:
            pass
