"""Pool of live shell sessions with busy/idle tracking.

Sessions are reused per (display-name prefix, working directory). A session
id is either idle or busy, never both, and once the host reports a session
closed its id is purged from the map and the busy set together.
"""

import asyncio
import re
import sys
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from scriptrunner.core.events import EventBus, emit
from scriptrunner.core.exceptions import SessionNotReadyError
from scriptrunner.core.host import ShellHost, ShellSession
from scriptrunner.core.logger import ScriptRunnerLogger

_DRIVE_RE = re.compile(r"^[A-Za-z]:(?:[\\/]|$)")


@dataclass
class Session:
    """A pooled session and the host handle behind it."""

    id: str
    display_name: str
    working_directory: str | None
    handle: ShellSession
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def ready(self) -> bool:
        return self.handle.is_ready

    @property
    def closed(self) -> bool:
        return self.handle.is_closed


def normalize_directory(path: str, case_insensitive: bool | None = None) -> str:
    """Canonical form used to compare working directories.

    Separators become ``/`` and trailing separators are dropped. Comparison is
    case-insensitive for drive-letter paths and on Windows hosts.
    """
    normalized = path.replace("\\", "/")
    while len(normalized) > 1 and normalized.endswith("/") and not normalized.endswith(":/"):
        normalized = normalized[:-1]

    if case_insensitive is None:
        case_insensitive = sys.platform == "win32" or bool(_DRIVE_RE.match(path))
    return normalized.lower() if case_insensitive else normalized


def directories_match(left: str, right: str) -> bool:
    return normalize_directory(left) == normalize_directory(right)


class SessionPool:
    """Finds, creates and tracks shell sessions.

    Map and busy-set mutations happen under a lock and never span an await,
    so host callbacks, close watchers and callers can interleave freely.
    """

    def __init__(
        self,
        host: ShellHost,
        logger: ScriptRunnerLogger | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.host = host
        self.logger = logger or ScriptRunnerLogger()
        self.event_bus = event_bus
        self._sessions: dict[str, Session] = {}
        self._busy: set[str] = set()
        self._watchers: dict[str, asyncio.Task[None]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def busy_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._busy)

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def is_busy(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._busy

    def find_idle(self, name_prefix: str, working_directory: str | None = None) -> Session | None:
        """Return the first idle live session matching prefix and directory.

        Sessions with an unknown working directory never satisfy a request
        that names one.
        """
        with self._lock:
            return self._find_idle_locked(name_prefix, working_directory)

    def _find_idle_locked(
        self, name_prefix: str, working_directory: str | None
    ) -> Session | None:
        for session in self._sessions.values():
            if session.id in self._busy or session.closed:
                continue
            if not session.display_name.startswith(name_prefix):
                continue
            if working_directory is not None:
                if session.working_directory is None:
                    continue
                if not directories_match(session.working_directory, working_directory):
                    continue
            return session
        return None

    async def acquire(
        self, name_prefix: str, working_directory: str | None = None
    ) -> tuple[Session, bool]:
        """Reserve an idle matching session, creating one on a miss.

        Returns:
            (session, is_new). The session is marked busy either way.
        """
        with self._lock:
            session = self._find_idle_locked(name_prefix, working_directory)
            if session is not None:
                self._busy.add(session.id)
        if session is not None:
            self.logger.debug(
                "Reusing idle session", session_id=session.id, display_name=session.display_name
            )
            return session, False

        session_id = uuid.uuid4().hex[:8]
        display_name = f"{name_prefix} #{session_id}"
        handle = await self.host.create_session(display_name, working_directory)
        session = Session(
            id=session_id,
            display_name=display_name,
            working_directory=working_directory,
            handle=handle,
        )

        with self._lock:
            self._sessions[session_id] = session
            self._busy.add(session_id)
        self._watchers[session_id] = asyncio.create_task(
            self._watch_close(session), name=f"session-close-{session_id}"
        )

        self.logger.info(
            "Session created",
            session_id=session_id,
            display_name=display_name,
            working_directory=working_directory,
        )
        emit(
            self.event_bus,
            "session_created",
            session_id,
            display_name=display_name,
            working_directory=working_directory,
        )
        return session, True

    def release(self, session_id: str) -> bool:
        """Mark a session idle. Releasing an idle or unknown session is a no-op.

        Returns:
            True if the session was busy
        """
        with self._lock:
            was_busy = session_id in self._busy
            self._busy.discard(session_id)
        if was_busy:
            self.logger.debug("Session released", session_id=session_id)
        return was_busy

    async def wait_until_ready(self, session: Session) -> None:
        """Suspend until the host says the session accepts commands.

        No timeout is applied here; wrap the call in asyncio.wait_for.

        Raises:
            SessionNotReadyError: Readiness failed or the session closed first
        """
        try:
            await session.handle.wait_ready()
        except SessionNotReadyError:
            raise
        except Exception as e:
            raise SessionNotReadyError(
                f"Session '{session.display_name}' did not become ready: {e}",
                session_id=session.id,
            ) from e

        self.logger.debug("Session ready", session_id=session.id)
        emit(self.event_bus, "session_ready", session.id, display_name=session.display_name)

    async def close(self, session_id: str) -> bool:
        """Close a session through the host and purge it.

        Returns:
            False if the session was not in the pool
        """
        session = self.get(session_id)
        if session is None:
            return False
        try:
            await session.handle.close()
        except Exception as e:
            self.logger.warn("Closing session failed", session_id=session_id, error=str(e))
        self._purge(session_id)
        return True

    async def close_all(self) -> None:
        watchers = list(self._watchers.values())
        for session in self.list_sessions():
            await self.close(session.id)
        for task in watchers:
            task.cancel()
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)
        self._watchers.clear()

    async def _watch_close(self, session: Session) -> None:
        await session.handle.wait_closed()
        self._purge(session.id)

    def _purge(self, session_id: str) -> None:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
            self._busy.discard(session_id)
        watcher = self._watchers.pop(session_id, None)
        if watcher is not None and watcher is not asyncio.current_task():
            watcher.cancel()

        if removed is None:
            return
        self.logger.info("Session closed", session_id=session_id, display_name=removed.display_name)
        emit(self.event_bus, "session_closed", session_id, display_name=removed.display_name)
