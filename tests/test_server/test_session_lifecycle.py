"""
Tests for tandem/server/session.py - session teardown, idle reaping and
transcripts that survive a server restart.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from tandem.agents.state import RunCommand
from tandem.core.db import TranscriptDB
from tandem.server.session import SessionManager


@pytest.fixture
def manager(loop_factory):
    return SessionManager(loop_factory=loop_factory)


def later(seconds):
    return datetime.now() + timedelta(seconds=seconds)


class TestDestroySession:
    """Tests for destroy_session()."""

    @pytest.mark.asyncio
    async def test_closes_gateway_client(self, manager, gateway):
        session = await manager.get_or_create()

        assert await manager.destroy_session(session.session_id) is True

        assert gateway.closed is True
        assert session.context.closed is True
        assert await manager.get_session_count() == 0

    @pytest.mark.asyncio
    async def test_close_failure_still_destroys(self, manager, gateway):
        async def broken_close():
            raise RuntimeError("connection pool gone")

        gateway.aclose = broken_close
        session = await manager.get_or_create()

        assert await manager.destroy_session(session.session_id) is True
        assert await manager.get_session(session.session_id) is None

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        assert await manager.destroy_session("missing") is False


class TestReaping:
    """Tests for reap_idle() and run_reaper()."""

    @pytest.mark.asyncio
    async def test_reaps_only_detached_idle_sessions(self, manager, gateway):
        idle = await manager.get_or_create()

        attached = await manager.get_or_create()
        attached.connections = 1

        waiting = await manager.get_or_create()
        waiting.loop.gate.request(RunCommand(command="ls"))

        reaped = await manager.reap_idle(idle_ttl=10, now=later(100))

        assert reaped == 1
        assert await manager.get_session(idle.session_id) is None
        assert await manager.get_session(attached.session_id) is attached
        assert await manager.get_session(waiting.session_id) is waiting
        assert gateway.closed is True

    @pytest.mark.asyncio
    async def test_recent_activity_survives(self, manager):
        session = await manager.get_or_create()

        assert await manager.reap_idle(idle_ttl=10, now=later(5)) == 0
        assert await manager.get_session(session.session_id) is session

    @pytest.mark.asyncio
    async def test_running_cycle_survives(self, manager):
        session = await manager.get_or_create()
        session.context.begin_cycle()

        assert await manager.reap_idle(idle_ttl=10, now=later(100)) == 0

        session.context.end_cycle()

    @pytest.mark.asyncio
    async def test_ttl_comes_from_settings(self, manager, isolated_settings):
        settings = isolated_settings.load_settings()
        settings["sessions"]["idle_ttl"] = 60
        isolated_settings.save_settings(settings)
        await manager.get_or_create()

        assert await manager.reap_idle(now=later(30)) == 0
        assert await manager.reap_idle(now=later(90)) == 1

    @pytest.mark.asyncio
    async def test_reaper_task_reaps_until_cancelled(self, manager, isolated_settings):
        settings = isolated_settings.load_settings()
        settings["sessions"]["idle_ttl"] = 0
        isolated_settings.save_settings(settings)
        session = await manager.get_or_create()
        session.last_activity = datetime.now() - timedelta(seconds=5)

        reaper = asyncio.create_task(manager.run_reaper(interval=0.01))
        try:
            for _ in range(200):
                if await manager.get_session_count() == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            reaper.cancel()
            with pytest.raises(asyncio.CancelledError):
                await reaper

        assert await manager.get_session_count() == 0


class TestPersistedTranscripts:
    """Tests for transcripts restored after a restart."""

    @pytest.mark.asyncio
    async def test_history_survives_restart(self, loop_factory, gateway):
        gateway.replies.append("Hello there.")
        first = SessionManager(loop_factory=loop_factory)
        session = await first.get_or_create()
        await session.loop.send("hi")
        session_id = session.session_id
        await first.destroy_all()

        restarted = SessionManager(loop_factory=loop_factory)
        restored = await restarted.get_or_create(session_id)

        assert restored.session_id == session_id
        assert restored.loop.transcript() == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "Hello there."},
        ]

    @pytest.mark.asyncio
    async def test_reaped_session_keeps_transcript(self, manager, loop_factory):
        session = await manager.get_or_create()
        session.loop.history.add("user", "remember me")
        await manager.reap_idle(idle_ttl=0, now=later(10))

        again = await manager.get_or_create(session.session_id)

        assert again is not session
        assert again.loop.transcript() == [{"role": "user", "content": "remember me"}]

    @pytest.mark.asyncio
    async def test_forget_history_deletes_transcript(self, manager):
        session = await manager.get_or_create()
        session.loop.history.add("user", "secret")

        await manager.destroy_session(session.session_id, forget_history=True)
        again = await manager.get_or_create(session.session_id)

        assert again.loop.transcript() == []

    @pytest.mark.asyncio
    async def test_persistence_can_be_disabled(self, loop_factory, isolated_settings):
        settings = isolated_settings.load_settings()
        settings["sessions"]["persist_history"] = False
        isolated_settings.save_settings(settings)

        manager = SessionManager(loop_factory=loop_factory)
        session = await manager.get_or_create()
        session.loop.history.add("user", "ephemeral")

        assert not isolated_settings.get_history_db_path().exists()

    @pytest.mark.asyncio
    async def test_prune_uses_retention_setting(self, loop_factory, tmp_path):
        db = TranscriptDB(tmp_path / "t.db")
        db.save_turn("old", "user", "x", keep=50)
        manager = SessionManager(loop_factory=loop_factory, transcript_db=db)

        assert manager.prune_transcripts() == 0
        assert db.prune(older_than_days=-1) == 1
