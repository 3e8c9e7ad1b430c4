"""Tests for the session pool: reuse, busy tracking and close handling."""

import asyncio
import random
from unittest.mock import Mock

import pytest

from conftest import FakeHost, settle
from scriptrunner.core.events import EventBus
from scriptrunner.core.exceptions import SessionNotReadyError
from scriptrunner.core.session_pool import SessionPool, directories_match, normalize_directory

PREFIX = "Script Runner (Bash)"


@pytest.fixture
def pool(host, logger):
    return SessionPool(host, logger=logger)


class TestNormalizeDirectory:
    def test_trailing_separators(self):
        assert normalize_directory("/home/me/project/") == "/home/me/project"
        assert normalize_directory("/") == "/"

    def test_backslashes_and_drive_case(self):
        assert normalize_directory("C:\\Work\\Repo\\") == "c:/work/repo"
        assert normalize_directory("C:\\") == "c:/"

    def test_posix_paths_are_case_sensitive(self):
        assert not directories_match("/tmp/Repo", "/tmp/repo")

    def test_drive_paths_match_across_forms(self):
        assert directories_match("C:\\Work\\Repo", "c:/work/repo/")

    def test_explicit_case_insensitive(self):
        assert normalize_directory("/Tmp/A", case_insensitive=True) == "/tmp/a"


class TestAcquire:
    @pytest.mark.asyncio
    async def test_creates_session_on_miss(self, pool, host):
        session, is_new = await pool.acquire(PREFIX, "/work")

        assert is_new
        assert session.display_name.startswith(f"{PREFIX} #")
        assert session.working_directory == "/work"
        assert pool.is_busy(session.id)
        assert len(host.sessions) == 1
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_reuses_idle_session(self, pool, host):
        first, _ = await pool.acquire(PREFIX, "/work")
        pool.release(first.id)

        second, is_new = await pool.acquire(PREFIX, "/work/")

        assert not is_new
        assert second.id == first.id
        assert len(host.sessions) == 1
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_busy_session_is_never_reused(self, pool, host):
        first, _ = await pool.acquire(PREFIX, "/work")
        second, is_new = await pool.acquire(PREFIX, "/work")

        assert is_new
        assert second.id != first.id
        assert pool.busy_ids == {first.id, second.id}
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_directory_mismatch_creates_new(self, pool):
        first, _ = await pool.acquire(PREFIX, "/a")
        pool.release(first.id)

        second, is_new = await pool.acquire(PREFIX, "/b")

        assert is_new
        assert second.id != first.id
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_unknown_directory_never_matches_named_request(self, pool):
        first, _ = await pool.acquire(PREFIX, None)
        pool.release(first.id)

        second, is_new = await pool.acquire(PREFIX, "/a")
        assert is_new

        pool.release(second.id)
        third, is_new = await pool.acquire(PREFIX, None)
        assert not is_new
        assert third.id in {first.id, second.id}
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_prefix_must_match(self, pool):
        first, _ = await pool.acquire("Script Runner (WSL)", "/a")
        pool.release(first.id)

        second, is_new = await pool.acquire(PREFIX, "/a")
        assert is_new
        assert second.id != first.id
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_closed_session_is_not_reused(self, pool):
        first, _ = await pool.acquire(PREFIX, "/a")
        pool.release(first.id)
        first.handle.mark_closed()

        second, is_new = await pool.acquire(PREFIX, "/a")
        assert is_new
        assert second.id != first.id
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_host_failure_propagates_without_registering(self, host, pool):
        host.fail_create = True
        with pytest.raises(OSError, match="cannot open terminal"):
            await pool.acquire(PREFIX, "/a")
        assert len(pool) == 0
        assert pool.busy_ids == frozenset()

    @pytest.mark.asyncio
    async def test_session_created_event(self, host, logger):
        bus = EventBus()
        handler = Mock()
        bus.subscribe(handler)
        pool = SessionPool(host, logger=logger, event_bus=bus)

        session, _ = await pool.acquire(PREFIX, "/a")

        event = handler.call_args.args[0]
        assert event.type == "session_created"
        assert event.source == session.id
        assert event.data["working_directory"] == "/a"
        await pool.close_all()


class TestFindIdle:
    @pytest.mark.asyncio
    async def test_skips_busy_and_matches_directory(self, pool):
        busy, _ = await pool.acquire(PREFIX, "/a")
        idle, _ = await pool.acquire(PREFIX, "/a")
        pool.release(idle.id)

        assert pool.find_idle(PREFIX, "/a/") is idle
        assert pool.find_idle(PREFIX, "/b") is None
        assert pool.find_idle("Script Runner (WSL)", "/a") is None
        assert pool.is_busy(busy.id)
        assert not pool.is_busy(idle.id)
        await pool.close_all()


class TestRelease:
    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, pool):
        session, _ = await pool.acquire(PREFIX)

        assert pool.release(session.id) is True
        assert pool.release(session.id) is False
        assert not pool.is_busy(session.id)
        await pool.close_all()

    def test_release_unknown_is_noop(self, pool):
        assert pool.release("missing") is False


class TestReadiness:
    @pytest.mark.asyncio
    async def test_wait_until_ready(self, pool):
        session, _ = await pool.acquire(PREFIX)
        await pool.wait_until_ready(session)
        assert session.ready
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_failed_readiness_is_wrapped(self, host, pool):
        host.ready_error = RuntimeError("shell integration unavailable")
        session, _ = await pool.acquire(PREFIX)

        with pytest.raises(SessionNotReadyError) as exc_info:
            await pool.wait_until_ready(session)

        assert exc_info.value.session_id == session.id
        assert "shell integration unavailable" in exc_info.value.message
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_close_before_ready_is_wrapped(self, host, pool):
        host.auto_ready = False
        session, _ = await pool.acquire(PREFIX)
        waiter = asyncio.create_task(pool.wait_until_ready(session))
        await asyncio.sleep(0)

        session.handle.mark_closed()

        with pytest.raises(SessionNotReadyError):
            await asyncio.wait_for(waiter, timeout=1)
        await pool.close_all()


class TestClose:
    @pytest.mark.asyncio
    async def test_host_close_purges_map_and_busy_set(self, pool):
        session, _ = await pool.acquire(PREFIX)
        assert pool.is_busy(session.id)

        session.handle.mark_closed()
        await settle()

        assert pool.get(session.id) is None
        assert session.id not in pool.busy_ids
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_close_calls_host_and_purges(self, pool, host):
        session, _ = await pool.acquire(PREFIX)

        assert await pool.close(session.id) is True
        await settle()

        assert host.sessions[0].close_calls == 1
        assert len(pool) == 0
        assert await pool.close(session.id) is False

    @pytest.mark.asyncio
    async def test_close_error_still_purges(self, pool):
        session, _ = await pool.acquire(PREFIX)

        async def broken_close():
            raise OSError("already gone")

        session.handle.close = broken_close
        assert await pool.close(session.id) is True
        assert len(pool) == 0
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_close_event_emitted_once(self, host, logger):
        bus = EventBus()
        closed = []
        bus.subscribe(lambda event: closed.append(event) if event.type == "session_closed" else None)
        pool = SessionPool(host, logger=logger, event_bus=bus)
        session, _ = await pool.acquire(PREFIX)

        await pool.close(session.id)
        session.handle.mark_closed()
        await settle()

        assert len(closed) == 1
        assert closed[0].source == session.id

    @pytest.mark.asyncio
    async def test_close_all(self, pool, host):
        for _ in range(3):
            await pool.acquire(PREFIX)

        await pool.close_all()

        assert len(pool) == 0
        assert all(s.close_calls == 1 for s in host.sessions)
        assert pool._watchers == {}


class TestInvariants:
    @pytest.mark.asyncio
    async def test_random_acquire_release_close_sequence(self, pool):
        """Busy ids are always a subset of live ids, and busy sessions are never handed out twice."""
        rng = random.Random(1234)
        held: set[str] = set()
        directories = ["/a", "/b", None]

        for _ in range(200):
            action = rng.choice(["acquire", "acquire", "release", "close"])
            if action == "acquire":
                session, _ = await pool.acquire(PREFIX, rng.choice(directories))
                assert session.id not in held
                held.add(session.id)
            elif action == "release" and held:
                session_id = rng.choice(sorted(held))
                pool.release(session_id)
                held.discard(session_id)
            elif action == "close":
                live = pool.list_sessions()
                if live:
                    victim = rng.choice(live)
                    victim.handle.mark_closed()
                    held.discard(victim.id)
                    await settle()

            live_ids = {s.id for s in pool.list_sessions()}
            assert pool.busy_ids <= live_ids
            assert pool.busy_ids == held

        await pool.close_all()
