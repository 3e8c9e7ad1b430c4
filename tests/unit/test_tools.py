"""Tests for the script, output and version tools."""

import asyncio

import pytest

from conftest import FakeExecution
from scriptrunner.core.exceptions import E_DISPATCH, E_NOT_FOUND, E_TIMEOUT, E_VALIDATION
from scriptrunner.core.tool_protocol import ToolCall
from scriptrunner.tools import (
    GetScriptOutputTool,
    GetVersionTool,
    RunBashScriptTool,
    RunScriptTool,
    ToolContext,
    create_default_registry,
)
from scriptrunner.tools.run_script import script_preview
from scriptrunner.version import VERSION


@pytest.fixture
def context(runner, logger):
    return ToolContext(runner=runner, logger=logger)


def call(name: str, **arguments) -> ToolCall:
    return ToolCall(id="call_1", name=name, arguments=arguments)


class TestScriptPreview:
    def test_short_script(self):
        assert script_preview("a\nb") == "a\nb"

    def test_long_script_is_cut(self):
        assert script_preview("1\n2\n3\n4\n5") == "1\n2\n3\n..."


class TestDefaultRegistry:
    def test_all_tools_registered(self, context):
        registry = create_default_registry(context)
        assert registry.list_tools() == [
            "run_script",
            "run_bash_script",
            "get_script_output",
            "get_version",
        ]

    def test_script_tools_require_confirmation(self):
        assert RunScriptTool().get_definition().safety["requires_confirmation"] is True
        assert GetVersionTool().get_definition().safety["requires_confirmation"] is False


class TestRunScriptTool:
    def test_definition(self):
        definition = RunScriptTool().get_definition()
        properties = definition.parameters["properties"]

        assert definition.parameters["required"] == ["script"]
        assert set(properties["shell"]["enum"]) >= {"powershell", "cmd", "wsl", "gitbash", "bash"}
        assert "default: powershell" in properties["shell"]["description"]

    @pytest.mark.asyncio
    async def test_runs_powershell_by_default(self, context, host):
        host.executions.append(FakeExecution(["hello\n"]))

        result = await RunScriptTool().execute(call("run_script", script="Write-Output hello"), context)

        assert result.success
        assert "STDOUT:\nhello" in result.output
        assert result.data["exit_code"] == 0
        assert host.sessions[0].name.startswith("Script Runner (PowerShell) #")
        command = host.sessions[0].commands[0]
        assert command.startswith("pwsh -NoProfile -ExecutionPolicy Bypass -Command ")
        assert ".ps1" in command
        await context.runner.shutdown()

    @pytest.mark.asyncio
    async def test_explicit_shell(self, context, host):
        result = await RunScriptTool().execute(call("run_script", script="echo 1", shell="cmd"), context)

        assert result.success
        assert host.sessions[0].name.startswith("Script Runner (cmd) #")
        await context.runner.shutdown()

    @pytest.mark.asyncio
    async def test_background_returns_command_id(self, context, host):
        host.executions.append(FakeExecution(["x"], gate=asyncio.Event()))

        result = await RunScriptTool().execute(
            call("run_script", script="Start-Sleep 60", isBackground=True), context
        )

        assert result.success
        assert result.data["is_background"] is True
        assert f"Command ID: {result.data['command_id']}" in result.output
        await context.runner.shutdown()

    @pytest.mark.asyncio
    async def test_keep_script_reported(self, context):
        result = await RunScriptTool().execute(
            call("run_script", script="echo 1", shell="bash", keepScript=True), context
        )

        assert f"Script saved at: {result.data['script_path']}" in result.output
        await context.runner.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments, message",
        [
            ({}, "script is required"),
            ({"script": ""}, "script is required"),
            ({"script": "x", "shell": "fish"}, "shell must be one of"),
            ({"script": "x", "timeoutMs": 0}, "timeoutMs must be a positive integer"),
            ({"script": "x", "timeoutMs": "10"}, "timeoutMs must be a positive integer"),
            ({"script": "x", "isBackground": "yes"}, "isBackground must be a boolean"),
            ({"script": "x", "workingDirectory": 5}, "workingDirectory must be a string"),
        ],
    )
    async def test_validation(self, context, host, arguments, message):
        result = await RunScriptTool().execute(call("run_script", **arguments), context)

        assert not result.success
        assert result.error_code == E_VALIDATION
        assert message in result.error
        assert host.sessions == []

    @pytest.mark.asyncio
    async def test_dispatch_failure(self, context, host):
        host.fail_execute = True

        result = await RunScriptTool().execute(call("run_script", script="x", shell="bash"), context)

        assert not result.success
        assert result.error_code == E_DISPATCH
        assert "rejected the command" in result.error
        await context.runner.shutdown()

    @pytest.mark.asyncio
    async def test_interrupted_timeout(self, context, host):
        host.executions.append(FakeExecution(["x"], gate=asyncio.Event()))

        result = await RunScriptTool().execute(
            call("run_script", script="x", shell="bash", timeoutMs=20, closeOnTimeout=True), context
        )

        assert not result.success
        assert result.error_code == E_TIMEOUT
        assert result.data["timed_out"] is True
        await context.runner.shutdown()

    def test_prepare_invocation(self):
        prepared = RunScriptTool().prepare_invocation({"script": "a\nb\nc\nd"})

        assert prepared.invocation_message == "Running PowerShell script..."
        assert prepared.title == "Run PowerShell Script"
        assert prepared.message.startswith("Run this PowerShell script?")
        assert "```powershell\na\nb\nc\n...\n```" in prepared.message

    def test_prepare_invocation_background(self):
        prepared = RunScriptTool().prepare_invocation(
            {"script": "dir", "shell": "cmd", "isBackground": True}
        )

        assert prepared.invocation_message == "Starting background cmd script..."
        assert "```bat\ndir\n```" in prepared.message
        assert "Running in background mode" in prepared.message


class TestRunBashScriptTool:
    def test_definition(self):
        definition = RunBashScriptTool().get_definition()
        properties = definition.parameters["properties"]

        assert properties["shell"]["enum"] == ["wsl", "gitbash", "bash"]
        assert "default: 120000" in properties["timeoutMs"]["description"]

    @pytest.mark.asyncio
    async def test_defaults_to_wsl(self, context, host):
        result = await RunBashScriptTool().execute(call("run_bash_script", script="ls"), context)

        assert result.success
        assert host.sessions[0].name.startswith("Script Runner (WSL) #")
        assert host.sessions[0].commands[0].startswith("wsl bash -c ")
        await context.runner.shutdown()

    @pytest.mark.asyncio
    async def test_rejects_non_bash_shells(self, context):
        result = await RunBashScriptTool().execute(
            call("run_bash_script", script="ls", shell="powershell"), context
        )

        assert not result.success
        assert result.error == "shell must be one of: wsl, gitbash, bash"

    def test_prepare_invocation(self):
        prepared = RunBashScriptTool().prepare_invocation({"script": "ls", "shell": "gitbash"})

        assert prepared.invocation_message == "Running Bash script via GIT BASH..."
        assert prepared.message.startswith("Run this Bash script via GIT BASH?")
        assert "```bash\nls\n```" in prepared.message


class TestGetScriptOutputTool:
    @pytest.mark.asyncio
    async def test_not_found(self, context):
        result = await GetScriptOutputTool().execute(call("get_script_output", id="missing"), context)

        assert not result.success
        assert result.error_code == E_NOT_FOUND
        assert 'Command "missing" not found' in result.output

    @pytest.mark.asyncio
    async def test_missing_id(self, context):
        result = await GetScriptOutputTool().execute(call("get_script_output"), context)

        assert result.error_code == E_VALIDATION

    @pytest.mark.asyncio
    async def test_invalid_timeout(self, context):
        result = await GetScriptOutputTool().execute(
            call("get_script_output", id="x", timeoutMs=-5), context
        )

        assert result.error_code == E_VALIDATION

    @pytest.mark.asyncio
    async def test_follow_background_command(self, context, host):
        gate = asyncio.Event()
        host.executions.append(FakeExecution(["one\n"], gate=gate, after=["two\n"]))
        started = await RunScriptTool().execute(
            call("run_script", script="x", shell="bash", isBackground=True), context
        )
        command_id = started.data["command_id"]

        await asyncio.sleep(0.01)
        running = await GetScriptOutputTool().execute(call("get_script_output", id=command_id), context)
        assert running.success
        assert "Status: running" in running.output
        assert running.data["output"] == "one\n"

        gate.set()
        done = await GetScriptOutputTool().execute(
            call("get_script_output", id=command_id, waitForCompletion=True, timeoutMs=1000), context
        )
        assert done.data["status"] == "completed"
        assert done.output.endswith("one\ntwo\n")
        await context.runner.shutdown()


class TestGetVersionTool:
    @pytest.mark.asyncio
    async def test_version(self, context):
        result = await GetVersionTool().execute(call("get_version"), context)

        assert result.success
        assert f"Version: {VERSION}" in result.output
        assert result.data["package"] == "scriptrunner"
