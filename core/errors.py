"""Error taxonomy for the execution gateway and tool dispatch layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from core.process_runner import ExecutionResult


class GatewayError(Exception):
    """Base class for all choco-gateway errors."""


class SpawnError(GatewayError):
    """The external executable could not be launched at all."""

    def __init__(self, executable: str, args: Sequence[str] = (), cause: Optional[BaseException] = None):
        self.executable = str(executable)
        self.args_list = [str(a) for a in args]
        self.cause = cause
        detail = str(cause or "").strip() or (cause.__class__.__name__ if cause else "unknown error")
        super().__init__(f"failed to launch {self.executable}: {detail}")


class ToolError(GatewayError):
    """Base class for errors surfaced to the tool caller."""


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        self.name = str(name)
        super().__init__(f"unknown tool: {self.name}")


class ToolInputError(ToolError):
    """Tool parameters are missing or not accepted by the tool."""


class ToolExecutionError(ToolError):
    """The command ran but did not succeed.

    The message is the captured stderr, or stdout when stderr is empty.
    """

    def __init__(self, tool: str, result: "ExecutionResult"):
        self.tool = str(tool)
        self.result = result
        message = result.stderr or result.stdout or f"{self.tool} failed with exit code {result.exit_code}"
        super().__init__(message)
