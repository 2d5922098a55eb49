"""Declarative registration of choco tools with the @tool decorator.

Each builder maps tool parameters onto a discrete ``choco`` argument vector.
Builders only check what the command line needs (required ids, known
actions); they do not validate parameter types.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from core.errors import ToolInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCall:
    """Argument vector for one choco run, plus an optional timeout override."""

    args: List[str]
    timeout_ms: Optional[int] = None


# Builder signature: def builder(**params) -> ToolCall
ToolBuilder = Callable[..., ToolCall]


@dataclass
class ToolSpec:
    """Metadata for a registered tool."""

    name: str  # e.g. "choco_install"
    description: str
    builder: ToolBuilder
    mutating: bool = False
    admin_note: Optional[str] = None  # shown to non-admin callers of mutating tools

    def to_dict(self) -> dict:
        return {"name": self.name, "description": self.description, "mutating": self.mutating}


class ToolRegistry:
    """Central store of tools."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            logger.warning("Tool %s registered twice, overwriting", spec.name)
        self._tools[spec.name] = spec

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def list_all(self) -> List[ToolSpec]:
        return sorted(self._tools.values(), key=lambda s: s.name)


# ── Module-level registry used by the @tool decorator ──
registry = ToolRegistry()


def tool(name: str, description: str = "", *, mutating: bool = False, admin_note: Optional[str] = None):
    """Decorator that registers a builder as a tool.

    Usage::

        @tool("choco_info", "Get package information")
        def build_info(id: str, exact: bool = True) -> ToolCall:
            ...
    """

    def decorator(func: ToolBuilder) -> ToolBuilder:
        registry.register(
            ToolSpec(name=name, description=description, builder=func, mutating=mutating, admin_note=admin_note)
        )
        return func

    return decorator


def _require(value, message: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ToolInputError(message)
    return str(value)


def _choice(value, allowed: Sequence[str], label: str = "action") -> str:
    text = str(value or "").strip().lower()
    if text not in allowed:
        raise ToolInputError(f"{label} must be one of: {', '.join(allowed)}")
    return text


def _timeout_ms(timeout_sec) -> Optional[int]:
    if timeout_sec is None:
        return None
    try:
        seconds = int(timeout_sec)
    except (TypeError, ValueError):
        raise ToolInputError("timeout_sec must be a positive integer")
    if seconds <= 0:
        raise ToolInputError("timeout_sec must be a positive integer")
    return seconds * 1000


def _extra(extra_args) -> List[str]:
    if not extra_args:
        return []
    if isinstance(extra_args, str) or not isinstance(extra_args, (list, tuple)):
        raise ToolInputError("extra_args must be a list of strings")
    return [str(a) for a in extra_args]


# ── Read-only tools ──


@tool("choco_list", "List installed (local) Chocolatey packages")
def build_list(local_only: bool = True, exact: bool = False, id: Optional[str] = None) -> ToolCall:
    args = ["list"]
    if local_only:
        args.append("-l")
    if exact and id:
        args.append("--exact")
    if id:
        args.append(str(id))
    return ToolCall(args)


@tool("choco_search", "Search remote Chocolatey packages")
def build_search(query: Optional[str] = None, exact: bool = False, prerelease: bool = False) -> ToolCall:
    args = ["search", _require(query, "query is required")]
    if exact:
        args.append("--exact")
    if prerelease:
        args.append("--pre")
    return ToolCall(args)


@tool("choco_info", "Get package information")
def build_info(id: Optional[str] = None, exact: bool = True, verbose: bool = False) -> ToolCall:
    args = ["info", _require(id, "id is required")]
    if exact:
        args.append("--exact")
    if verbose:
        args.append("--verbose")
    return ToolCall(args)


@tool("choco_outdated", "List outdated packages")
def build_outdated(ignore_pinned: bool = False, include_prerelease: bool = False) -> ToolCall:
    args = ["outdated"]
    if ignore_pinned:
        args.append("--ignore-pinned")
    if include_prerelease:
        args.append("--pre")
    return ToolCall(args)


@tool("choco_help", "Show Chocolatey help")
def build_help(topic: Optional[str] = None) -> ToolCall:
    args = ["-?"]
    if topic:
        args.insert(0, str(topic))
    return ToolCall(args)


# ── Package changes ──


@tool(
    "choco_install",
    "Install a Chocolatey package",
    mutating=True,
    admin_note="Some installs may fail or be user-scoped only.",
)
def build_install(
    id: Optional[str] = None,
    version: Optional[str] = None,
    prerelease: bool = False,
    force: bool = False,
    source: Optional[str] = None,
    yes: bool = True,
    fail_on_stderr: bool = False,
    timeout_sec: Optional[int] = None,
    extra_args: Optional[List[str]] = None,
) -> ToolCall:
    if not yes:
        raise ToolInputError("Install requires yes=true")
    args = ["install", _require(id, "id is required")]
    if version:
        args.extend(["--version", str(version)])
    if prerelease:
        args.append("--pre")
    if force:
        args.append("--force")
    if source:
        args.extend(["-s", str(source)])
    args.append("-y")
    if fail_on_stderr:
        args.append("--fail-on-standard-error")
    args.extend(_extra(extra_args))
    return ToolCall(args, _timeout_ms(timeout_sec))


@tool(
    "choco_upgrade",
    "Upgrade a Chocolatey package (or all with id=all)",
    mutating=True,
    admin_note="Some upgrades may fail or be user-scoped only.",
)
def build_upgrade(
    id: Optional[str] = None,
    prerelease: bool = False,
    force: bool = False,
    source: Optional[str] = None,
    yes: bool = True,
    fail_on_stderr: bool = False,
    timeout_sec: Optional[int] = None,
    extra_args: Optional[List[str]] = None,
) -> ToolCall:
    if not yes:
        raise ToolInputError("Upgrade requires yes=true")
    args = ["upgrade", _require(id, "id is required")]
    if prerelease:
        args.append("--pre")
    if force:
        args.append("--force")
    if source:
        args.extend(["-s", str(source)])
    args.append("-y")
    if fail_on_stderr:
        args.append("--fail-on-standard-error")
    args.extend(_extra(extra_args))
    return ToolCall(args, _timeout_ms(timeout_sec))


@tool(
    "choco_uninstall",
    "Uninstall a Chocolatey package",
    mutating=True,
    admin_note="Some uninstalls may fail or be partial.",
)
def build_uninstall(
    id: Optional[str] = None,
    version: Optional[str] = None,
    force: bool = False,
    yes: bool = True,
    timeout_sec: Optional[int] = None,
    extra_args: Optional[List[str]] = None,
) -> ToolCall:
    if not yes:
        raise ToolInputError("Uninstall requires yes=true")
    args = ["uninstall", _require(id, "id is required")]
    if version:
        args.extend(["--version", str(version)])
    if force:
        args.append("--force")
    args.append("-y")
    args.extend(_extra(extra_args))
    return ToolCall(args, _timeout_ms(timeout_sec))


# ── Pins, features, sources, config ──


@tool("choco_pin", "Pin or list pins")
def build_pin(action: str = "list", id: Optional[str] = None) -> ToolCall:
    action = _choice(action, ("add", "remove", "list"))
    if action == "list":
        return ToolCall(["pin", "list"])
    return ToolCall(["pin", action, "-n", _require(id, f"id is required for {action}")])


@tool("choco_feature", "View or enable/disable features")
def build_feature(action: str = "list", name: Optional[str] = None) -> ToolCall:
    action = _choice(action, ("list", "enable", "disable"))
    if action == "list":
        return ToolCall(["feature", "list"])
    return ToolCall(["feature", action, "-n", _require(name, "name is required for enable/disable")])


@tool("choco_source", "List or manage sources")
def build_source(
    action: str = "list",
    name: Optional[str] = None,
    source: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
) -> ToolCall:
    action = _choice(action, ("list", "add", "remove", "enable", "disable", "update"))
    if action == "list":
        return ToolCall(["source", "list"])
    if action == "add":
        if not name or not source:
            raise ToolInputError("name and source are required for add")
        args = ["source", "add", "-n", str(name), "-s", str(source)]
        if user:
            args.extend(["-u", str(user)])
        if password:
            args.extend(["-p", str(password)])
        return ToolCall(args)
    return ToolCall(["source", action, "-n", _require(name, "name is required for this action")])


@tool("choco_config", "Get or set Chocolatey config values")
def build_config(action: str = "list", key: Optional[str] = None, value: Optional[str] = None) -> ToolCall:
    action = _choice(action, ("get", "set", "unset", "list"))
    if action == "list":
        return ToolCall(["config", "list"])
    if action == "set":
        if not key or value is None:
            raise ToolInputError("key and value are required for set")
        return ToolCall(["config", "set", str(key), str(value)])
    return ToolCall(["config", action, _require(key, f"key is required for {action}")])
