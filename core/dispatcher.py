"""Tool dispatch: map a tool call onto one execute() and format the outcome."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from core.errors import ToolExecutionError, ToolInputError, UnknownToolError
from core.executor import CommandExecutor
from core.process_runner import ExecutionResult
from core.tools import ToolRegistry, ToolSpec, registry as default_registry
from utils.constants import REBOOT_REQUIRED_EXIT_CODE
from utils.helpers import truncate_text
from utils.privileges import is_admin

logger = logging.getLogger(__name__)

AdminCheck = Callable[[], Awaitable[bool]]

NON_ADMIN_PREFIX = "[Non-admin session] {note}\n\n"


@dataclass
class ToolResponse:
    text: str
    annotations: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        return data


class ToolDispatcher:
    def __init__(
        self,
        executor: CommandExecutor,
        *,
        registry: Optional[ToolRegistry] = None,
        admin_check: Optional[AdminCheck] = None,
    ):
        self.executor = executor
        self.registry = registry or default_registry
        self.admin_check = admin_check or is_admin

    def list_tools(self):
        return [spec.to_dict() for spec in self.registry.list_all()]

    async def call(self, name: str, params: Optional[Dict[str, Any]] = None) -> ToolResponse:
        """Run a tool and return its response.

        Raises ``UnknownToolError``, ``ToolInputError``, ``ToolExecutionError``
        or ``SpawnError``.
        """
        spec = self.registry.get(str(name))
        if spec is None:
            raise UnknownToolError(name)
        if params is not None and not isinstance(params, dict):
            raise ToolInputError("params must be an object")

        params = params or {}
        try:
            inspect.signature(spec.builder).bind(**params)
        except TypeError as e:
            raise ToolInputError(f"invalid parameters for {spec.name}: {e}") from e
        plan = spec.builder(**params)

        admin = True
        if spec.mutating:
            admin = await self._check_admin()

        result = await self.executor.execute(plan.args, plan.timeout_ms, tool=spec.name)
        if not result.success and not self._is_reboot_success(result):
            logger.warning(
                "Tool %s failed exit_code=%d: %s",
                spec.name,
                result.exit_code,
                truncate_text(result.stderr or result.stdout, 300),
            )
            raise ToolExecutionError(spec.name, result)

        return self._build_response(spec, result, admin)

    @staticmethod
    def _is_reboot_success(result: ExecutionResult) -> bool:
        # 3010 means the change was applied and a restart is pending.
        return result.exit_code == REBOOT_REQUIRED_EXIT_CODE and not (result.timed_out or result.buffer_exceeded)

    async def _check_admin(self) -> bool:
        try:
            return bool(await self.admin_check())
        except Exception as e:
            logger.debug("Admin check failed: %s", e)
            return False

    @staticmethod
    def _build_response(spec: ToolSpec, result: ExecutionResult, admin: bool) -> ToolResponse:
        text = result.stdout
        annotations: Dict[str, str] = {}
        if spec.mutating:
            if not admin and spec.admin_note:
                text = NON_ADMIN_PREFIX.format(note=spec.admin_note) + text
            annotations["exitCode"] = str(result.exit_code)
            annotations["rebootRequired"] = "true" if result.reboot_required else "false"
        elif result.reboot_required:
            annotations["rebootRequired"] = "true"
        return ToolResponse(text=text, annotations=annotations)
