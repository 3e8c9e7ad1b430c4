"""Registry of dispatched commands and their accumulated output.

Each registered command gets exactly one background accumulator that drains
the host's output stream. Only the accumulator knows when a command has
really finished, so it is also the one that removes the staged script.
"""

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from scriptrunner.core.events import EventBus, emit
from scriptrunner.core.exceptions import StreamError
from scriptrunner.core.host import CommandExecution
from scriptrunner.core.logger import ScriptRunnerLogger


def new_command_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Command:
    """One script invocation submitted into a session.

    ``output`` only ever grows and ``completed`` flips to True exactly once;
    both are written solely by the command's accumulator.
    """

    command_id: str
    session_id: str
    script_path: str | None = None
    keep_script: bool = False
    close_on_timeout: bool = False
    command_line: str = ""
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed: bool = False
    completed_at: datetime | None = None
    error: str | None = None
    exit_code: int | None = None
    _chunks: list[str] = field(default_factory=list, repr=False)
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _waiters: int = field(default=0, repr=False)

    @property
    def output(self) -> str:
        return "".join(self._chunks)

    @property
    def duration_ms(self) -> int:
        end = self.completed_at or datetime.now(UTC)
        return int((end - self.started_at).total_seconds() * 1000)

    @property
    def has_waiters(self) -> bool:
        return self._waiters > 0

    def append(self, text: str) -> None:
        if self.completed:
            raise RuntimeError(f"Command {self.command_id} already completed")
        self._chunks.append(text)

    def mark_completed(self) -> bool:
        """Flip to completed and wake waiters.

        Returns:
            False if the command had already completed
        """
        if self.completed:
            return False
        self.completed = True
        self.completed_at = datetime.now(UTC)
        self._done.set()
        return True

    async def wait(self) -> None:
        await self._done.wait()

    def to_dict(self) -> dict[str, Any]:
        return {
            "command_id": self.command_id,
            "session_id": self.session_id,
            "status": "completed" if self.completed else "running",
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "script_path": self.script_path,
            "keep_script": self.keep_script,
            "output_length": sum(len(chunk) for chunk in self._chunks),
            "error": self.error,
        }


class CommandRegistry:
    """Command id -> Command store plus the accumulators that fill it.

    Completed commands beyond ``max_retained`` are evicted oldest first.
    Running commands, and commands someone is still waiting on, are never
    evicted.
    """

    def __init__(
        self,
        cleanup: Callable[[str], Any] | None = None,
        max_retained: int = 200,
        logger: ScriptRunnerLogger | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            cleanup: Called with a command's script path once it completes,
                unless the command keeps its script
            max_retained: Completed commands kept for later retrieval
            logger: Structured logger
            event_bus: Optional bus for command lifecycle events
        """
        self.cleanup = cleanup
        self.max_retained = max_retained
        self.logger = logger or ScriptRunnerLogger()
        self.event_bus = event_bus
        self._commands: dict[str, Command] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    @property
    def running_count(self) -> int:
        return sum(1 for command in self._commands.values() if not command.completed)

    def register(self, command: Command, execution: CommandExecution) -> Command:
        """Store ``command`` and start draining ``execution`` into it.

        Raises:
            ValueError: If the command id is already registered
        """
        if command.command_id in self._commands:
            raise ValueError(f"Command already registered: {command.command_id}")

        self._commands[command.command_id] = command
        self._tasks[command.command_id] = asyncio.create_task(
            self._accumulate(command, execution), name=f"accumulate-{command.command_id}"
        )
        self.logger.debug(
            "Command registered",
            command_id=command.command_id,
            session_id=command.session_id,
        )
        return command

    def get(self, command_id: str) -> Command | None:
        return self._commands.get(command_id)

    def list_commands(self) -> list[Command]:
        return sorted(self._commands.values(), key=lambda c: c.started_at)

    async def await_completion(
        self, command_id: str, timeout: float | None = None
    ) -> Command | None:
        """Wait for a command to finish.

        A timeout only stops this wait; the accumulator keeps running.

        Returns:
            The command (check ``completed``), or None for an unknown id
        """
        command = self._commands.get(command_id)
        if command is None:
            return None
        if command.completed:
            return command

        command._waiters += 1
        try:
            if timeout is None:
                await command.wait()
            else:
                try:
                    await asyncio.wait_for(command.wait(), timeout=timeout)
                except TimeoutError:
                    pass
        finally:
            command._waiters -= 1
        return command

    async def shutdown(self) -> None:
        """Cancel accumulators that are still draining."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _accumulate(self, command: Command, execution: CommandExecution) -> None:
        try:
            async for chunk in execution.read():
                if not chunk:
                    continue
                command.append(chunk)
                emit(self.event_bus, "command_output", command.command_id, text=chunk)
        except asyncio.CancelledError:
            command.error = "Output collection cancelled"
            raise
        except Exception as e:
            error = StreamError(f"Output stream failed: {e}", command_id=command.command_id)
            command.error = str(e)
            self.logger.exception("Command output stream failed", error)
        finally:
            command.exit_code = execution.exit_code
            self._finish(command)

    def _finish(self, command: Command) -> None:
        if not command.mark_completed():
            return
        self._tasks.pop(command.command_id, None)

        self.logger.info(
            "Command completed",
            command_id=command.command_id,
            session_id=command.session_id,
            duration_ms=command.duration_ms,
            output_length=len(command.output),
            error=command.error,
        )
        emit(
            self.event_bus,
            "command_completed",
            command.command_id,
            session_id=command.session_id,
            error=command.error,
        )

        if command.script_path and not command.keep_script and self.cleanup is not None:
            try:
                self.cleanup(command.script_path)
            except Exception as e:
                self.logger.warn(
                    "Script cleanup failed",
                    command_id=command.command_id,
                    script_path=command.script_path,
                    error=str(e),
                )

        self._evict()

    def _evict(self) -> None:
        excess = len(self._commands) - self.max_retained
        if excess <= 0:
            return
        evictable = sorted(
            (c for c in self._commands.values() if c.completed and not c.has_waiters),
            key=lambda c: c.completed_at or c.started_at,
        )
        for command in evictable[:excess]:
            del self._commands[command.command_id]
            self.logger.debug("Command evicted", command_id=command.command_id)
