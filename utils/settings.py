"""Resolved runtime settings.

Precedence: environment variable > YAML config > built-in default.
Settings are read once at process start.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from utils.constants import (
    DEFAULT_CHOCO_BIN,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_KILL_GRACE_SECONDS,
    DEFAULT_MAX_BUFFER_BYTES,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_TIMEOUT_MS,
    ENV_CHOCO_BIN,
    ENV_HTTP_PORT,
    ENV_MAX_BUFFER_BYTES,
    ENV_MAX_CONCURRENCY,
    ENV_TIMEOUT_MS,
)


@dataclass(frozen=True)
class GatewaySettings:
    choco_bin: str = DEFAULT_CHOCO_BIN
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT

    def to_dict(self) -> dict:
        return {
            "choco_bin": self.choco_bin,
            "timeout_ms": self.timeout_ms,
            "max_concurrency": self.max_concurrency,
            "max_buffer_bytes": self.max_buffer_bytes,
            "kill_grace_seconds": self.kill_grace_seconds,
            "http_host": self.http_host,
            "http_port": self.http_port,
        }


def _pick(env: Mapping[str, str], env_key: Optional[str], section: dict, key: str) -> Any:
    if env_key:
        raw = env.get(env_key)
        if raw is not None and str(raw).strip():
            return str(raw).strip()
    return section.get(key)


def _as_int(value: Any, default: int, *, minimum: Optional[int] = None) -> int:
    if value is None or value == "":
        return default
    try:
        parsed = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    if minimum is not None and parsed < minimum:
        return minimum
    return parsed


def _as_positive_int(value: Any, default: int) -> int:
    parsed = _as_int(value, default)
    return parsed if parsed > 0 else default


def _as_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) and parsed > 0 else default


def resolve_settings(
    config: Optional[dict] = None,
    env: Optional[Mapping[str, str]] = None,
) -> GatewaySettings:
    """Build settings from a loaded YAML config dict and the environment."""
    cfg = config or {}
    environ = os.environ if env is None else env
    choco_cfg = cfg.get("choco") or {}
    http_cfg = cfg.get("http") or {}
    if not isinstance(choco_cfg, dict):
        choco_cfg = {}
    if not isinstance(http_cfg, dict):
        http_cfg = {}

    choco_bin = str(_pick(environ, ENV_CHOCO_BIN, choco_cfg, "bin") or "").strip() or DEFAULT_CHOCO_BIN
    return GatewaySettings(
        choco_bin=choco_bin,
        timeout_ms=_as_positive_int(_pick(environ, ENV_TIMEOUT_MS, choco_cfg, "timeout_ms"), DEFAULT_TIMEOUT_MS),
        max_concurrency=_as_int(
            _pick(environ, ENV_MAX_CONCURRENCY, choco_cfg, "max_concurrency"),
            DEFAULT_MAX_CONCURRENCY,
            minimum=1,
        ),
        max_buffer_bytes=_as_positive_int(
            _pick(environ, ENV_MAX_BUFFER_BYTES, choco_cfg, "max_buffer_bytes"),
            DEFAULT_MAX_BUFFER_BYTES,
        ),
        kill_grace_seconds=_as_float(choco_cfg.get("kill_grace_seconds"), DEFAULT_KILL_GRACE_SECONDS),
        http_host=str(http_cfg.get("host") or DEFAULT_HTTP_HOST),
        http_port=_as_positive_int(_pick(environ, ENV_HTTP_PORT, http_cfg, "port"), DEFAULT_HTTP_PORT),
    )
