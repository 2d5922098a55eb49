"""
Centralized constants for choco-gateway.

Collects defaults, sentinels, and compiled patterns shared across modules.
"""
import re

# ── Executable ──
DEFAULT_CHOCO_BIN = "choco"

# ── Execution limits ──
DEFAULT_TIMEOUT_MS = 15 * 60 * 1000  # 15 minutes
DEFAULT_MAX_CONCURRENCY = 1
DEFAULT_MAX_BUFFER_BYTES = 10 * 1024 * 1024  # 10 MiB, stdout + stderr combined
DEFAULT_KILL_GRACE_SECONDS = 5.0
READ_CHUNK_BYTES = 64 * 1024

# ── Result classification ──
FALLBACK_EXIT_CODE = 1  # used when no exit code is observable
REBOOT_REQUIRED_EXIT_CODE = 3010
REBOOT_REQUIRED_RE = re.compile(r"3010|reboot required", re.IGNORECASE)

# ── HTTP surface ──
DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 11435

# ── Identity ──
SERVICE_NAME = "choco-gateway"
SERVICE_VERSION = "0.1.9"

# ── Environment variables ──
ENV_CHOCO_BIN = "CHOCO_BIN"
ENV_TIMEOUT_MS = "MCP_CHOCOLATEY_TIMEOUT_MS"
ENV_MAX_CONCURRENCY = "MCP_CHOCOLATEY_MAX_CONCURRENCY"
ENV_MAX_BUFFER_BYTES = "MCP_CHOCOLATEY_MAX_BUFFER_BYTES"
ENV_HTTP_PORT = "PORT"
