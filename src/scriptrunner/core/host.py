"""Shell host abstraction.

The supervisor never talks to a terminal or a process directly. It asks a
ShellHost for sessions, waits on their one-shot ready/closed signals, and
submits invocation strings whose output arrives as an async stream of text.
Implementations can be backed by subprocesses, a terminal emulator, a remote
agent, or a test fake without changing the supervisor.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class CommandExecution(ABC):
    """One invocation running inside a session."""

    @abstractmethod
    def read(self) -> AsyncIterator[str]:
        """Yield output chunks until the command's output ends.

        Only one consumer may read an execution. Errors raised while iterating
        mean the stream broke; output yielded before the error is still valid.
        """
        ...

    @property
    def exit_code(self) -> int | None:
        """Exit status if the host knows it, otherwise None."""
        return None


class ShellSession(ABC):
    """A live interactive shell that accepts one command at a time.

    Readiness and closure are one-shot signals. Hosts call mark_ready(),
    mark_failed() and mark_closed(); the supervisor awaits wait_ready() and
    wait_closed().
    """

    def __init__(self, name: str, working_directory: str | None = None) -> None:
        self.name = name
        self.working_directory = working_directory
        self._ready = asyncio.Event()
        self._closed = asyncio.Event()
        self._ready_error: BaseException | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set() and self._ready_error is None

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def mark_ready(self) -> None:
        """Signal that the session can accept structured command execution."""
        if not self._ready.is_set():
            self._ready.set()

    def mark_failed(self, error: BaseException) -> None:
        """Signal that the session will never become ready."""
        if not self._ready.is_set():
            self._ready_error = error
            self._ready.set()

    def mark_closed(self) -> None:
        """Signal that the underlying shell is gone. Safe to call repeatedly."""
        self._closed.set()

    async def wait_ready(self) -> None:
        """Wait until the session is ready.

        Raises:
            ConnectionError: The session closed before becoming ready
            BaseException: Whatever error the host passed to mark_failed()
        """
        if not self._ready.is_set():
            ready_task = asyncio.ensure_future(self._ready.wait())
            closed_task = asyncio.ensure_future(self._closed.wait())
            try:
                await asyncio.wait({ready_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                ready_task.cancel()
                closed_task.cancel()

        if self._ready_error is not None:
            raise self._ready_error
        if not self._ready.is_set():
            raise ConnectionError(f"Session '{self.name}' closed before it became ready")

    async def wait_closed(self) -> None:
        await self._closed.wait()

    @abstractmethod
    async def execute(self, command: str) -> CommandExecution:
        """Submit ``command`` and return its live execution.

        Raises:
            OSError: The host could not start the command
        """
        ...

    @abstractmethod
    async def interrupt(self) -> None:
        """Best-effort interrupt of whatever the session is running."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Tear the session down and mark it closed."""
        ...


class ShellHost(ABC):
    """Factory for shell sessions."""

    @abstractmethod
    async def create_session(
        self, name: str, working_directory: str | None = None
    ) -> ShellSession:
        """Create a new session. Readiness is signalled separately."""
        ...

    @abstractmethod
    def default_shell_path(self) -> str:
        """Path of the shell that interprets invocation strings."""
        ...

    def get_name(self) -> str:
        """Host name for logging."""
        return type(self).__name__
