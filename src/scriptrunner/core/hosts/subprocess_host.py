"""Subprocess-backed shell host.

Each session is a logical shell bound to a working directory. Every command
submitted into it runs through the host shell (/bin/sh on POSIX, %COMSPEC% on
Windows) in its own process group, with stderr merged into stdout.
"""

import asyncio
import codecs
import os
import signal
import sys
from collections.abc import AsyncIterator
from pathlib import Path

from scriptrunner.core.host import CommandExecution, ShellHost, ShellSession

READ_CHUNK_BYTES = 4096


class SubprocessExecution(CommandExecution):
    """Output of one subprocess, decoded incrementally as UTF-8."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self.process = process

    @property
    def exit_code(self) -> int | None:
        return self.process.returncode

    async def read(self) -> AsyncIterator[str]:
        stdout = self.process.stdout
        if stdout is None:
            await self.process.wait()
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stdout.read(READ_CHUNK_BYTES)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                yield text

        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail
        await self.process.wait()


class SubprocessSession(ShellSession):
    """A session whose commands are independent child processes."""

    def __init__(
        self,
        name: str,
        working_directory: str | None,
        shell_path: str,
        env: dict[str, str] | None = None,
    ) -> None:
        super().__init__(name, working_directory)
        self.shell_path = shell_path
        self.env = env
        self._processes: set[asyncio.subprocess.Process] = set()

    async def execute(self, command: str) -> CommandExecution:
        if self.is_closed:
            raise OSError(f"Session '{self.name}' is closed")

        kwargs: dict = {}
        if sys.platform != "win32":
            # New process group so interrupt() reaches the whole tree
            kwargs["preexec_fn"] = os.setpgrp
            kwargs["executable"] = self.shell_path

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=self.working_directory,
                env=self.env,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            raise OSError(f"Failed to start command: {e}") from e

        self._processes = {p for p in self._processes if p.returncode is None}
        self._processes.add(process)
        return SubprocessExecution(process)

    async def interrupt(self) -> None:
        for process in list(self._processes):
            if process.returncode is not None:
                continue
            try:
                if sys.platform != "win32":
                    os.killpg(os.getpgid(process.pid), signal.SIGINT)
                else:
                    process.terminate()
            except ProcessLookupError:
                pass

    async def close(self) -> None:
        for process in list(self._processes):
            if process.returncode is not None:
                continue
            try:
                if sys.platform != "win32":
                    os.killpg(os.getpgid(process.pid), signal.SIGKILL)
                else:
                    process.kill()
            except ProcessLookupError:
                pass
        self.mark_closed()


class SubprocessShellHost(ShellHost):
    """ShellHost that runs commands as local subprocesses."""

    def __init__(self, shell_path: str | None = None, env: dict[str, str] | None = None) -> None:
        """Initialize the host.

        Args:
            shell_path: Shell interpreting invocation strings (defaults to the platform shell)
            env: Environment for child processes (None inherits the current one)
        """
        self._shell_path = shell_path
        self.env = env

    def default_shell_path(self) -> str:
        if self._shell_path:
            return self._shell_path
        if sys.platform == "win32":
            return os.environ.get("COMSPEC", "cmd.exe")
        return "/bin/sh"

    async def create_session(
        self, name: str, working_directory: str | None = None
    ) -> ShellSession:
        session = SubprocessSession(
            name,
            working_directory,
            shell_path=self.default_shell_path(),
            env=self.env,
        )
        if working_directory is not None and not Path(working_directory).is_dir():
            session.mark_failed(
                FileNotFoundError(f"Working directory does not exist: {working_directory}")
            )
        else:
            session.mark_ready()
        return session
