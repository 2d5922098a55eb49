"""Best-effort check for an elevated (Administrator) Windows session."""

from __future__ import annotations

import logging
import re
import sys

from core.errors import SpawnError
from core.process_runner import ExecutionRequest, ProcessRunner

logger = logging.getLogger(__name__)

_ADMIN_PROBE = (
    "[Security.Principal.WindowsPrincipal]::new("
    "[Security.Principal.WindowsIdentity]::GetCurrent()"
    ").IsInRole([Security.Principal.WindowsBuiltInRole]::Administrator)"
)
_TRUE_RE = re.compile(r"true", re.IGNORECASE)


async def is_admin(runner: ProcessRunner = None) -> bool:
    """Return True only when PowerShell confirms an Administrator token.

    Always False off Windows or when the probe fails.
    """
    if runner is None:
        if sys.platform != "win32":
            return False
        runner = ProcessRunner("powershell", default_timeout_ms=5000, max_buffer_bytes=65536)
    request = ExecutionRequest.build(["-NoProfile", "-NonInteractive", "-Command", _ADMIN_PROBE])
    try:
        result = await runner.run(request)
    except SpawnError as e:
        logger.debug("Admin probe unavailable: %s", e)
        return False
    return result.success and bool(_TRUE_RE.search(result.stdout))
