"""
Session Manager for Tandem Server.

Owns every live orchestration session. A session bundles:
- SessionContext (identity, workspace, cycle guard)
- EventChannel (outbound events for attached surfaces)
- OrchestrationLoop (history, pending approvals, state machine)

Sessions outlive WebSocket connections: a surface reconnecting with its
session_id gets the same history and pending approvals back. Sessions end on
sign-out, server shutdown, or when reaped after staying detached and idle
longer than sessions.idle_ttl. Transcripts are persisted (tandem.core.db)
and restored when a surface reattaches with its session_id after a restart.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from tandem.agents.runtime import OrchestrationLoop
from tandem.core.db import SessionTranscript, TranscriptDB
from tandem.core.events import EventChannel
from tandem.core.processes import cleanup_processes
from tandem.core.session import Credential, SessionContext
from tandem.core.settings import get_settings_manager

logger = logging.getLogger(__name__)

LoopFactory = Callable[[SessionContext, EventChannel], OrchestrationLoop]


# ============================================================================
# SESSION DATA CLASS
# ============================================================================

@dataclass
class Session:
    """
    One orchestration session.

    Attributes:
        context: Per-session state passed explicitly to the loop.
        channel: Outbound event channel.
        loop: The session's Orchestration Loop.
        created_at: Session creation timestamp.
        last_activity: Last activity timestamp.
        connections: Number of surfaces currently attached.
    """

    context: SessionContext
    channel: EventChannel
    loop: OrchestrationLoop
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    connections: int = 0

    @property
    def session_id(self) -> str:
        return self.context.session_id

    def update_activity(self) -> None:
        self.last_activity = datetime.now()


# ============================================================================
# SESSION MANAGER
# ============================================================================

class SessionManager:
    """
    Tracks sessions by session_id.

    Usage:
        manager = get_session_manager()
        session = await manager.get_or_create(session_id, workspace_root="/work/app")
        ...
        await manager.destroy_session(session.session_id)
    """

    def __init__(
        self,
        loop_factory: Optional[LoopFactory] = None,
        transcript_db: Optional[TranscriptDB] = None
    ):
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._loop_factory = loop_factory or OrchestrationLoop

        settings = get_settings_manager()
        if transcript_db is None and settings.get_session_setting("persist_history"):
            transcript_db = TranscriptDB(settings.get_history_db_path())
        self._transcript_db = transcript_db

        logger.debug("SessionManager initialized")

    async def get_or_create(
        self,
        session_id: Optional[str] = None,
        workspace_root: Optional[str] = None
    ) -> Session:
        """
        Resume a session, or start one if the id is unknown or missing.

        A new session starts signed in when a sign-in was persisted, and with
        the persisted transcript of its session_id (after a server restart).

        Args:
            session_id: Id sent by a reconnecting surface.
            workspace_root: Workspace root reported by the surface.
        """
        async with self._lock:
            session = self._sessions.get(session_id) if session_id else None
            if session is not None:
                if workspace_root and session.context.workspace_root is None:
                    session.context.set_workspace_root(workspace_root)
                session.update_activity()
                logger.info(f"Session resumed: {session.session_id}")
                return session

            saved = get_settings_manager().get_saved_auth()
            identity = Credential(token=saved["token"], email=saved["email"]) if saved else None

            context = SessionContext.create(
                workspace_root=workspace_root,
                identity=identity,
                session_id=session_id,
            )
            channel = EventChannel(name=context.session_id[:8])
            session = Session(
                context=context,
                channel=channel,
                loop=self._loop_factory(context, channel),
            )
            if self._transcript_db is not None:
                session.loop.history.attach_store(SessionTranscript(
                    self._transcript_db,
                    context.session_id,
                    workspace_root=workspace_root,
                ))

            self._sessions[context.session_id] = session
            logger.info(f"Session created: {context.session_id}")
            return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def destroy_session(self, session_id: str, forget_history: bool = False) -> bool:
        """
        End a session: kill its processes, close its gateway client, channel
        and context.

        Args:
            session_id: Session to end.
            forget_history: Also delete the persisted transcript (sign-out).

        Returns:
            True if the session existed.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        cleanup_processes(session_id=session_id)
        session.loop.gate.clear()
        await session.channel.shutdown()
        try:
            await session.loop.adapter.aclose()
        except Exception as e:
            logger.error(f"Error closing gateway client for {session_id}: {e}", exc_info=True)
        session.context.destroy()

        if forget_history and self._transcript_db is not None:
            self._transcript_db.clear_session(session_id)

        logger.info(f"Session destroyed: {session_id}")
        return True

    async def destroy_all(self) -> int:
        """Destroy every session (server shutdown). Returns how many ended."""
        ids = list(self._sessions.keys())
        for session_id in ids:
            await self.destroy_session(session_id)
        return len(ids)

    # ========================================================================
    # IDLE REAPING
    # ========================================================================

    def is_reapable(self, session: Session, idle_ttl: float, now: datetime) -> bool:
        """Detached, nothing pending or running, and idle longer than idle_ttl."""
        return (
            session.connections == 0
            and not session.loop.pending()
            and not session.context.cycle_in_flight
            and (now - session.last_activity).total_seconds() > idle_ttl
        )

    async def reap_idle(
        self,
        idle_ttl: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Destroy detached sessions idle longer than ``idle_ttl`` seconds.

        Their persisted transcripts are kept, so a late reattach with the
        same session_id still gets its history back.

        Returns:
            Number of sessions reaped.
        """
        if idle_ttl is None:
            idle_ttl = float(get_settings_manager().get_session_setting("idle_ttl"))
        now = now or datetime.now()

        stale = [
            session_id for session_id, session in list(self._sessions.items())
            if self.is_reapable(session, idle_ttl, now)
        ]
        for session_id in stale:
            logger.info(f"Reaping idle session: {session_id}")
            await self.destroy_session(session_id)
        return len(stale)

    async def run_reaper(self, interval: Optional[float] = None) -> None:
        """Reap idle sessions every ``interval`` seconds until cancelled."""
        if interval is None:
            interval = float(get_settings_manager().get_session_setting("reap_interval"))
        while True:
            await asyncio.sleep(interval)
            try:
                await self.reap_idle()
            except Exception as e:
                logger.error(f"Session reaper failed: {e}", exc_info=True)

    def prune_transcripts(self) -> int:
        """Drop persisted transcripts older than the configured retention."""
        if self._transcript_db is None:
            return 0
        days = int(get_settings_manager().get_session_setting("history_retention_days"))
        return self._transcript_db.prune(days)

    async def get_session_count(self) -> int:
        return len(self._sessions)

    async def get_connection_count(self) -> int:
        return sum(session.connections for session in self._sessions.values())


# ============================================================================
# GLOBAL SINGLETON
# ============================================================================

_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """
    Get global SessionManager instance (singleton).

    Returns:
        Global SessionManager instance.
    """
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager


def reset_session_manager(manager: Optional[SessionManager] = None) -> None:
    """
    Replace the global SessionManager instance.

    WARNING: Only use in tests.
    """
    global _session_manager
    _session_manager = manager


__all__ = [
    "Session",
    "SessionManager",
    "get_session_manager",
    "reset_session_manager",
]
