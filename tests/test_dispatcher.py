"""Tests for ToolDispatcher: tool call to execute() and back."""

import pytest

from core.dispatcher import ToolDispatcher
from core.errors import SpawnError, ToolExecutionError, ToolInputError, UnknownToolError
from core.executor import CommandExecutor
from core.limiter import ConcurrencyLimiter
from core.process_runner import ExecutionState, classify_result
from core.tools import ToolCall, ToolRegistry, ToolSpec
from tests.conftest import FakeRunner


@pytest.mark.asyncio
async def test_read_tool_returns_stdout(make_dispatcher):
    runner = FakeRunner(results=[classify_result(0, "git 2.44.0\n1 packages installed.", "")])
    dispatcher = make_dispatcher(runner)
    response = await dispatcher.call("choco_list", {"id": "git"})
    assert runner.last_args == ["list", "-l", "git"]
    assert response.text.startswith("git 2.44.0")
    assert response.annotations == {}
    assert response.to_dict() == {"content": [{"type": "text", "text": response.text}]}


@pytest.mark.asyncio
async def test_unknown_tool(make_dispatcher):
    with pytest.raises(UnknownToolError):
        await make_dispatcher().call("choco_explode", {})


@pytest.mark.asyncio
async def test_unexpected_parameter_is_input_error(make_dispatcher):
    runner = FakeRunner()
    with pytest.raises(ToolInputError, match="choco_info"):
        await make_dispatcher(runner).call("choco_info", {"id": "git", "colour": "blue"})
    assert runner.requests == []


@pytest.mark.asyncio
async def test_non_object_params_rejected(make_dispatcher):
    with pytest.raises(ToolInputError):
        await make_dispatcher().call("choco_list", ["git"])


@pytest.mark.asyncio
async def test_failure_surfaces_stderr(make_dispatcher):
    runner = FakeRunner(results=[classify_result(1, "partial log", "Unable to resolve dependency")])
    with pytest.raises(ToolExecutionError) as excinfo:
        await make_dispatcher(runner).call("choco_info", {"id": "nope"})
    assert str(excinfo.value) == "Unable to resolve dependency"
    assert excinfo.value.result.exit_code == 1
    assert excinfo.value.tool == "choco_info"


@pytest.mark.asyncio
async def test_failure_falls_back_to_stdout(make_dispatcher):
    runner = FakeRunner(results=[classify_result(1, "Chocolatey installed 0/1 packages.", "")])
    with pytest.raises(ToolExecutionError, match="installed 0/1"):
        await make_dispatcher(runner).call("choco_search", {"query": "nope"})


@pytest.mark.asyncio
async def test_timeout_is_a_failure(make_dispatcher):
    timed_out = classify_result(None, "Downloading...", "", state=ExecutionState.TIMED_OUT)
    runner = FakeRunner(results=[timed_out])
    with pytest.raises(ToolExecutionError) as excinfo:
        await make_dispatcher(runner).call("choco_upgrade", {"id": "all"})
    assert excinfo.value.result.timed_out is True


@pytest.mark.asyncio
async def test_spawn_error_propagates(make_dispatcher):
    runner = FakeRunner(results=[SpawnError("choco", ["list"], FileNotFoundError("choco"))])
    with pytest.raises(SpawnError):
        await make_dispatcher(runner).call("choco_list", {})


@pytest.mark.asyncio
async def test_install_annotations_and_timeout(make_dispatcher):
    runner = FakeRunner(results=[classify_result(0, "The install of git was successful.", "")])
    response = await make_dispatcher(runner, admin=True).call("choco_install", {"id": "git", "timeout_sec": 90})
    assert runner.requests[0].timeout_ms == 90000
    assert response.text == "The install of git was successful."
    assert response.annotations == {"exitCode": "0", "rebootRequired": "false"}


@pytest.mark.asyncio
async def test_exit_3010_is_reported_as_success_with_reboot(make_dispatcher):
    runner = FakeRunner(results=[classify_result(3010, "Installed, restart pending.", "")])
    response = await make_dispatcher(runner).call("choco_install", {"id": "vcredist140"})
    assert response.annotations == {"exitCode": "3010", "rebootRequired": "true"}


@pytest.mark.asyncio
async def test_reboot_text_on_read_tool_is_annotated(make_dispatcher):
    runner = FakeRunner(results=[classify_result(0, "Reboot Required for pending changes", "")])
    response = await make_dispatcher(runner).call("choco_outdated", {})
    assert response.annotations == {"rebootRequired": "true"}


@pytest.mark.asyncio
async def test_non_admin_prefix_on_mutating_tools(make_dispatcher):
    runner = FakeRunner(results=[classify_result(0, "done", "")])
    response = await make_dispatcher(runner, admin=False).call("choco_uninstall", {"id": "git"})
    assert response.text == "[Non-admin session] Some uninstalls may fail or be partial.\n\ndone"


@pytest.mark.asyncio
async def test_admin_check_only_for_mutating_tools():
    calls = []

    async def admin_check():
        calls.append(1)
        return True

    dispatcher = ToolDispatcher(CommandExecutor(FakeRunner(), ConcurrencyLimiter(1)), admin_check=admin_check)
    await dispatcher.call("choco_list", {})
    assert calls == []
    await dispatcher.call("choco_upgrade", {"id": "git"})
    assert calls == [1]


@pytest.mark.asyncio
async def test_failing_admin_check_counts_as_non_admin():
    async def admin_check():
        raise OSError("powershell missing")

    runner = FakeRunner(results=[classify_result(0, "ok", "")])
    dispatcher = ToolDispatcher(CommandExecutor(runner, ConcurrencyLimiter(1)), admin_check=admin_check)
    response = await dispatcher.call("choco_install", {"id": "git"})
    assert response.text.startswith("[Non-admin session]")


def test_list_tools(make_dispatcher):
    tools = make_dispatcher().list_tools()
    names = [t["name"] for t in tools]
    assert "choco_install" in names
    install = next(t for t in tools if t["name"] == "choco_install")
    assert install == {"name": "choco_install", "description": "Install a Chocolatey package", "mutating": True}


@pytest.mark.asyncio
async def test_missing_required_keyword_is_input_error():
    local = ToolRegistry()
    local.register(ToolSpec(name="strict", description="", builder=lambda *, id: ToolCall(args=["info", id])))
    dispatcher = ToolDispatcher(CommandExecutor(FakeRunner(), ConcurrencyLimiter(1)), registry=local)
    with pytest.raises(ToolInputError, match="strict"):
        await dispatcher.call("strict", {})


@pytest.mark.asyncio
async def test_type_error_inside_builder_is_not_an_input_error():
    def broken_builder(id=None):
        return ToolCall(args=["info", id + 1])

    local = ToolRegistry()
    local.register(ToolSpec(name="broken", description="", builder=broken_builder))
    runner = FakeRunner()
    dispatcher = ToolDispatcher(CommandExecutor(runner, ConcurrencyLimiter(1)), registry=local)
    with pytest.raises(TypeError):
        await dispatcher.call("broken", {"id": "git"})
    assert runner.requests == []
