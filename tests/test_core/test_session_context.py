"""
Tests for tandem/core/session.py - SessionContext.
"""

from pathlib import Path

import pytest

from tandem.core.session import (
    Credential,
    CycleInFlightError,
    SessionClosedError,
    SessionContext,
)


class CountingInspector:
    def __init__(self):
        self.calls = 0

    def snapshot(self):
        self.calls += 1
        return f"snapshot #{self.calls}"


class TestSessionContext:
    """Tests for SessionContext."""

    def test_create_resolves_workspace_root(self, temp_workspace):
        context = SessionContext.create(workspace_root=str(temp_workspace))

        assert context.workspace_root == temp_workspace.resolve()
        assert context.working_directory == temp_workspace.resolve()
        assert context.session_id

    def test_without_workspace_uses_current_directory(self):
        context = SessionContext.create()

        assert context.workspace_root is None
        assert context.working_directory == Path.cwd()

    def test_identity(self):
        context = SessionContext.create()
        assert not context.is_signed_in
        assert context.token is None

        context.sign_in(Credential(token="abc", email="dev@example.com"))
        assert context.token == "abc"

        context.sign_out()
        assert not context.is_signed_in

    def test_snapshot_is_cached_until_invalidated(self):
        context = SessionContext.create()
        inspector = CountingInspector()

        assert context.workspace_snapshot(inspector) == "snapshot #1"
        assert context.workspace_snapshot(inspector) == "snapshot #1"

        context.invalidate_snapshot()
        assert context.workspace_snapshot(inspector) == "snapshot #2"

    def test_active_file_change_invalidates_snapshot(self):
        context = SessionContext.create()
        inspector = CountingInspector()
        context.workspace_snapshot(inspector)

        context.set_active_file("src/app.py")

        assert context.active_file == Path("src/app.py")
        assert not context.has_cached_snapshot

    def test_cycle_guard(self):
        context = SessionContext.create()

        context.begin_cycle()
        with pytest.raises(CycleInFlightError):
            context.begin_cycle()

        context.end_cycle()
        context.begin_cycle()
        assert context.cycle_in_flight

    @pytest.mark.asyncio
    async def test_cycle_context_manager_releases_on_error(self):
        context = SessionContext.create()

        with pytest.raises(RuntimeError):
            async with context.cycle():
                assert context.cycle_in_flight
                raise RuntimeError("boom")

        assert not context.cycle_in_flight

    def test_destroyed_context_rejects_use(self):
        context = SessionContext.create(identity=Credential(token="abc"))

        context.destroy()

        assert context.closed
        assert context.identity is None
        with pytest.raises(SessionClosedError):
            context.begin_cycle()
        with pytest.raises(SessionClosedError):
            context.workspace_snapshot(CountingInspector())
