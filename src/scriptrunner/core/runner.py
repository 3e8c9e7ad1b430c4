"""Execution orchestrator.

ScriptRunner stages a script, obtains a session from the pool, dispatches
the shell-specific invocation, registers the command for background output
collection and then either returns at once (background mode) or races the
collection against an optional timeout.

States: acquiring -> dispatching -> backgrounded | collecting -> done.
"""

import asyncio
import time
from types import TracebackType

from scriptrunner.core.config import RunnerConfig
from scriptrunner.core.dialect import (
    ShellKind,
    build_invocation,
    detect_shell_kind,
    extension_for,
    parse_shell_kind,
    prepare_script,
    session_name_for,
)
from scriptrunner.core.events import EventBus, emit
from scriptrunner.core.exceptions import (
    DispatchFailureError,
    ScriptRunnerException,
    SessionNotReadyError,
    format_error_for_user,
)
from scriptrunner.core.host import ShellHost
from scriptrunner.core.logger import ScriptRunnerLogger
from scriptrunner.core.registry import Command, CommandRegistry, new_command_id
from scriptrunner.core.results import TRUNCATION_NOTICE, ExecutionResult, OutputSnapshot
from scriptrunner.core.session_pool import Session, SessionPool
from scriptrunner.core.staging import ScriptStaging


class ScriptRunner:
    """Runs scripts in pooled shell sessions and tracks their output.

    The pool, registry and staging area are injectable so each caller (and
    each test) can own isolated instances.
    """

    def __init__(
        self,
        host: ShellHost,
        *,
        config: RunnerConfig | None = None,
        pool: SessionPool | None = None,
        registry: CommandRegistry | None = None,
        staging: ScriptStaging | None = None,
        logger: ScriptRunnerLogger | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.host = host
        self.config = config or RunnerConfig()
        self.logger = logger or ScriptRunnerLogger()
        self.event_bus = event_bus
        self.staging = staging or ScriptStaging(
            dir_name=self.config.temp_dir_name, logger=self.logger
        )
        self.pool = pool or SessionPool(host, logger=self.logger, event_bus=event_bus)
        self.registry = registry or CommandRegistry(
            cleanup=self.staging.remove,
            max_retained=self.config.max_retained_commands,
            logger=self.logger,
            event_bus=event_bus,
        )

    async def __aenter__(self) -> "ScriptRunner":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    def resolve_shell(self, shell: ShellKind | str | None = None) -> ShellKind:
        """Pick the target shell: explicit > configured default > host shell."""
        if shell is not None and str(shell).strip():
            kind = parse_shell_kind(shell)
            if kind is None:
                self.logger.warn("Unknown shell requested, falling back to sh", shell=str(shell))
                return ShellKind.SH
            return kind

        configured = parse_shell_kind(self.config.default_shell)
        if configured is not None:
            return configured
        return detect_shell_kind(self.host.default_shell_path())

    def invoking_shell(self) -> ShellKind:
        """Kind of the shell that interprets invocation strings inside sessions."""
        return detect_shell_kind(self.host.default_shell_path())

    async def run_script(
        self,
        script: str,
        shell: ShellKind | str | None = None,
        working_directory: str | None = None,
        timeout_ms: int | None = None,
        keep_script: bool = False,
        is_background: bool = False,
        close_on_timeout: bool = False,
    ) -> ExecutionResult:
        """Stage ``script`` to a temp file and run it.

        Never raises for execution problems; failures come back as an
        ExecutionResult with exit_code 1 and the reason in stderr.
        """
        kind = self.resolve_shell(shell)
        try:
            script_path = self.staging.stage(prepare_script(script, kind), extension_for(kind))
        except OSError as e:
            self.logger.error("Failed to stage script", shell=kind.value, error=str(e))
            return ExecutionResult(stdout="", stderr=f"Failed to write script: {e}", exit_code=1)

        return await self.run_file(
            str(script_path),
            shell=kind,
            working_directory=working_directory,
            timeout_ms=timeout_ms,
            keep_script=keep_script,
            is_background=is_background,
            close_on_timeout=close_on_timeout,
        )

    async def run_file(
        self,
        script_path: str,
        shell: ShellKind | str | None = None,
        working_directory: str | None = None,
        timeout_ms: int | None = None,
        keep_script: bool = False,
        is_background: bool = False,
        close_on_timeout: bool = False,
    ) -> ExecutionResult:
        """Run an already-written script file.

        Unless ``keep_script`` is set, the file is deleted once the command
        has finished (or straight away if it could not be dispatched).
        """
        kind = self.resolve_shell(shell)
        started = time.monotonic()
        if timeout_ms is None:
            timeout_ms = self.config.default_timeout_ms
        if timeout_ms is not None and timeout_ms <= 0:
            self._discard_script(script_path, keep_script)
            return ExecutionResult(
                stdout="", stderr=f"timeout_ms must be positive, got {timeout_ms}", exit_code=1
            )

        with self.logger.operation(
            "run_script", shell=kind.value, background=is_background, timeout_ms=timeout_ms
        ):
            try:
                session = await self._acquire_ready_session(kind, working_directory)
            except SessionNotReadyError as e:
                self._discard_script(script_path, keep_script)
                return self._failure(e, script_path if keep_script else None, started)
            except asyncio.CancelledError:
                self._discard_script(script_path, keep_script)
                raise

            try:
                command = await self._dispatch(session, kind, script_path, keep_script, close_on_timeout)
                if is_background:
                    return ExecutionResult(
                        stdout="",
                        stderr="",
                        exit_code=0,
                        command_id=command.command_id,
                        is_background=True,
                        session_id=session.id,
                        script_path=script_path if keep_script else None,
                        duration_ms=_elapsed_ms(started),
                    )
                return await self._collect(session, command, timeout_ms, started)
            except DispatchFailureError as e:
                self._discard_script(script_path, keep_script)
                return self._failure(e, script_path if keep_script else None, started)
            finally:
                # Released on every path, timeouts included
                self.pool.release(session.id)

    async def get_output(
        self,
        command_id: str,
        wait_for_completion: bool = False,
        timeout_ms: int | None = None,
    ) -> OutputSnapshot:
        """Read a command's output so far, optionally waiting for the end.

        Unknown ids produce a ``not_found`` snapshot rather than an error.
        A ``timeout_ms`` of zero or less returns the current output without
        waiting; None waits until the command finishes.
        """
        command = self.registry.get(command_id)
        if command is None:
            return OutputSnapshot(
                command_id=command_id,
                status="not_found",
                error=(
                    f'Command "{command_id}" not found. '
                    "It may have expired or the ID is invalid."
                ),
            )

        if wait_for_completion and not command.completed:
            timeout = timeout_ms / 1000 if timeout_ms is not None else None
            await self.registry.await_completion(command_id, timeout=timeout)

        return OutputSnapshot(
            command_id=command_id,
            status="completed" if command.completed else "running",
            output=command.output,
            session_id=command.session_id,
            error=command.error,
            exit_code=command.exit_code,
        )

    async def shutdown(self) -> None:
        """Close every session and stop collecting output."""
        await self.pool.close_all()
        await self.registry.shutdown()

    async def _acquire_ready_session(
        self, kind: ShellKind, working_directory: str | None
    ) -> Session:
        name = session_name_for(kind, self.config.session_base_name)
        try:
            session, is_new = await self.pool.acquire(name, working_directory)
        except Exception as e:
            raise SessionNotReadyError(f"Could not create session '{name}': {e}") from e

        if not is_new:
            return session

        try:
            await asyncio.wait_for(
                self.pool.wait_until_ready(session), timeout=self.config.readiness_timeout_s
            )
        except asyncio.CancelledError:
            self.pool.release(session.id)
            await self.pool.close(session.id)
            raise
        except (SessionNotReadyError, TimeoutError) as e:
            self.pool.release(session.id)
            await self.pool.close(session.id)
            if isinstance(e, SessionNotReadyError):
                raise
            raise SessionNotReadyError(
                "Timed out waiting for session readiness after "
                f"{self.config.readiness_timeout_s:g}s",
                session_id=session.id,
            ) from e
        return session

    async def _dispatch(
        self,
        session: Session,
        kind: ShellKind,
        script_path: str,
        keep_script: bool,
        close_on_timeout: bool,
    ) -> Command:
        invocation = build_invocation(script_path, kind, self.invoking_shell())
        try:
            execution = await session.handle.execute(invocation)
        except Exception as e:
            raise DispatchFailureError(
                f"Host rejected the command: {e}", session_id=session.id, command=invocation
            ) from e

        command = Command(
            command_id=new_command_id(),
            session_id=session.id,
            script_path=script_path,
            keep_script=keep_script,
            close_on_timeout=close_on_timeout,
            command_line=invocation,
        )
        # From here on the registry's accumulator owns script cleanup
        self.registry.register(command, execution)

        self.logger.info(
            "Command dispatched",
            command_id=command.command_id,
            session_id=session.id,
            shell=kind.value,
            invocation=invocation[:200],
        )
        emit(
            self.event_bus,
            "command_started",
            command.command_id,
            session_id=session.id,
            shell=kind.value,
            invocation=invocation,
        )
        return command

    async def _collect(
        self, session: Session, command: Command, timeout_ms: int | None, started: float
    ) -> ExecutionResult:
        timeout = timeout_ms / 1000 if timeout_ms is not None else None
        await self.registry.await_completion(command.command_id, timeout=timeout)
        kept_path = command.script_path if command.keep_script else None

        if command.completed:
            return ExecutionResult(
                stdout=command.output,
                stderr=f"Output stream failed: {command.error}" if command.error else "",
                exit_code=0,
                command_id=command.command_id,
                session_id=session.id,
                script_path=kept_path,
                duration_ms=_elapsed_ms(started),
            )

        partial = command.output
        exit_code = 0
        if command.close_on_timeout:
            await self._interrupt(session, command)
            exit_code = 1

        self.logger.warn(
            "Command timed out, still running in background",
            command_id=command.command_id,
            session_id=session.id,
            timeout_ms=timeout_ms,
            interrupted=command.close_on_timeout,
        )
        emit(
            self.event_bus,
            "command_timeout",
            command.command_id,
            session_id=session.id,
            timeout_ms=timeout_ms,
        )

        notice = TRUNCATION_NOTICE.format(timeout_ms=timeout_ms, command_id=command.command_id)
        return ExecutionResult(
            stdout=f"{partial}\n{notice}" if partial else notice,
            stderr="",
            exit_code=exit_code,
            command_id=command.command_id,
            timed_out=True,
            session_id=session.id,
            script_path=kept_path,
            duration_ms=_elapsed_ms(started),
        )

    async def _interrupt(self, session: Session, command: Command) -> None:
        try:
            await session.handle.interrupt()
        except Exception as e:
            self.logger.warn(
                "Interrupt failed", command_id=command.command_id, session_id=session.id, error=str(e)
            )
            return
        emit(self.event_bus, "command_interrupted", command.command_id, session_id=session.id)

    def _discard_script(self, script_path: str, keep_script: bool) -> None:
        if not keep_script:
            self.staging.remove(script_path)

    def _failure(
        self, error: ScriptRunnerException, script_path: str | None, started: float
    ) -> ExecutionResult:
        self.logger.exception("Script run failed", error)
        emit(
            self.event_bus,
            "error",
            error.metadata.get("session_id") or "runner",
            error=error.message,
            error_code=error.error_code,
        )
        return ExecutionResult(
            stdout="",
            stderr=format_error_for_user(error),
            exit_code=1,
            session_id=error.metadata.get("session_id"),
            script_path=script_path,
            duration_ms=_elapsed_ms(started),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
