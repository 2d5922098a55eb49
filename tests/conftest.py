"""Global fixtures for choco-gateway test suite."""

import asyncio
import sys
from typing import List, Optional

import pytest

from core.dispatcher import ToolDispatcher
from core.executor import CommandExecutor
from core.limiter import ConcurrencyLimiter
from core.process_runner import ExecutionRequest, ExecutionResult, ProcessRunner, classify_result


# ── FakeRunner ──


class FakeRunner:
    """Test double for ProcessRunner that records requests.

    ``results`` are returned in order; an exception instance is raised instead.
    Once exhausted, every run succeeds with stdout "ok".
    """

    def __init__(self, results: Optional[list] = None, delay: float = 0.0):
        self.executable = "choco"
        self.results = list(results or [])
        self.delay = delay
        self.requests: List[ExecutionRequest] = []
        self.running = 0
        self.max_running = 0

    async def run(self, request: ExecutionRequest) -> ExecutionResult:
        self.requests.append(request)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.running -= 1
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return classify_result(0, "ok", "")

    @property
    def last_args(self) -> List[str]:
        return list(self.requests[-1].args) if self.requests else []


def py(code: str) -> List[str]:
    """Arguments that make the Python interpreter run ``code``."""
    return ["-c", code]


@pytest.fixture
def python_runner():
    """Factory for a ProcessRunner driving the current Python interpreter."""

    def _make(**kwargs) -> ProcessRunner:
        kwargs.setdefault("default_timeout_ms", 10_000)
        kwargs.setdefault("kill_grace_seconds", 2.0)
        return ProcessRunner(sys.executable, **kwargs)

    return _make


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def make_dispatcher():
    """Factory for a dispatcher over a FakeRunner with a fixed admin answer."""

    def _make(runner: Optional[FakeRunner] = None, admin: bool = True, max_concurrency: int = 1) -> ToolDispatcher:
        runner = runner or FakeRunner()
        executor = CommandExecutor(runner, ConcurrencyLimiter(max_concurrency))

        async def _admin_check() -> bool:
            return admin

        return ToolDispatcher(executor, admin_check=_admin_check)

    return _make
