"""Shared fixtures and an in-memory shell host for unit tests."""

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest

from scriptrunner.core.config import RunnerConfig
from scriptrunner.core.host import CommandExecution, ShellHost, ShellSession
from scriptrunner.core.logger import ScriptRunnerLogger
from scriptrunner.core.runner import ScriptRunner
from scriptrunner.core.staging import ScriptStaging


class FakeExecution(CommandExecution):
    """Scripted output stream.

    Yields ``chunks``, then blocks on ``gate`` (if any), then yields ``after``
    and finally raises ``error`` (if any).
    """

    def __init__(
        self,
        chunks: list[str] | None = None,
        *,
        gate: asyncio.Event | None = None,
        after: list[str] | None = None,
        error: BaseException | None = None,
        exit_code: int | None = 0,
    ) -> None:
        self.chunks = chunks if chunks is not None else ["ok\n"]
        self.gate = gate
        self.after = after or []
        self.error = error
        self._exit_code = exit_code
        self.finished = False

    @property
    def exit_code(self) -> int | None:
        return self._exit_code if self.finished else None

    async def read(self) -> AsyncIterator[str]:
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.gate is not None:
            await self.gate.wait()
        for chunk in self.after:
            yield chunk
        self.finished = True
        if self.error is not None:
            raise self.error


class FakeSession(ShellSession):
    def __init__(self, name: str, working_directory: str | None, host: "FakeHost") -> None:
        super().__init__(name, working_directory)
        self.host = host
        self.commands: list[str] = []
        self.interrupts = 0
        self.close_calls = 0

    async def execute(self, command: str) -> CommandExecution:
        if self.host.fail_execute:
            raise OSError("terminal rejected the command")
        self.commands.append(command)
        return self.host.next_execution(command)

    async def interrupt(self) -> None:
        self.interrupts += 1
        if self.host.fail_interrupt:
            raise OSError("interrupt not delivered")

    async def close(self) -> None:
        self.close_calls += 1
        self.mark_closed()


class FakeHost(ShellHost):
    """ShellHost whose sessions hand out FakeExecutions.

    Queue executions in ``executions`` to control what the next commands
    produce; otherwise ``execution_factory`` is used.
    """

    def __init__(
        self,
        shell_path: str = "/bin/bash",
        auto_ready: bool = True,
        execution_factory: Callable[[str], CommandExecution] | None = None,
    ) -> None:
        self.shell_path = shell_path
        self.auto_ready = auto_ready
        self.execution_factory = execution_factory or (lambda command: FakeExecution())
        self.executions: list[CommandExecution] = []
        self.sessions: list[FakeSession] = []
        self.ready_error: BaseException | None = None
        self.fail_create = False
        self.fail_execute = False
        self.fail_interrupt = False

    async def create_session(
        self, name: str, working_directory: str | None = None
    ) -> ShellSession:
        if self.fail_create:
            raise OSError("cannot open terminal")
        session = FakeSession(name, working_directory, self)
        self.sessions.append(session)
        if self.ready_error is not None:
            session.mark_failed(self.ready_error)
        elif self.auto_ready:
            session.mark_ready()
        return session

    def default_shell_path(self) -> str:
        return self.shell_path

    def next_execution(self, command: str) -> CommandExecution:
        if self.executions:
            return self.executions.pop(0)
        return self.execution_factory(command)


async def settle(rounds: int = 5) -> None:
    """Let background tasks run a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep logs, profiles and env overrides out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    for name in (
        "SCRIPTRUNNER_TIMEOUT_MS",
        "SCRIPTRUNNER_READINESS_TIMEOUT",
        "SCRIPTRUNNER_MAX_COMMANDS",
        "SCRIPTRUNNER_DEFAULT_SHELL",
        "SCRIPTRUNNER_LOG_LEVEL",
        "SCRIPTRUNNER_DISABLE_FILE_LOGGING",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def logger(tmp_path):
    return ScriptRunnerLogger(log_dir=str(tmp_path / "logs"), level="DEBUG", console=False)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def staging(tmp_path, logger):
    return ScriptStaging(base_dir=tmp_path / "tmp", logger=logger)


@pytest.fixture
def config():
    return RunnerConfig(readiness_timeout_s=0.5)


@pytest.fixture
def runner(host, config, staging, logger):
    return ScriptRunner(host, config=config, staging=staging, logger=logger)
