"""
Session Context for Tandem.

Holds the per-session state the Orchestration Loop and Model Gateway Adapter
need, passed to them explicitly:
- identity: optional sign-in credential (bearer token + email)
- workspace_root / active_file: what the Workspace Inspector looks at
- workspace snapshot cache
- cycle_in_flight: re-entrancy guard for orchestration cycles

Lifecycle:
- created when a session starts (surface attaches for the first time)
- destroyed on sign-out or server shutdown; a destroyed context rejects use
"""

import uuid
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class CycleInFlightError(Exception):
    """Raised when a cycle is started while another is still in flight."""
    pass


class SessionClosedError(Exception):
    """Raised when a destroyed SessionContext is used."""
    pass


class SnapshotProvider(Protocol):
    def snapshot(self) -> str: ...


@dataclass(frozen=True)
class Credential:
    """Bearer credential issued by the gateway's sign-in endpoint."""

    token: str
    email: str = ""


@dataclass
class SessionContext:
    """
    Mutable per-session state with an explicit lifecycle.

    Attributes:
        session_id: Stable identifier used by surfaces to re-attach.
        identity: Credential of the signed-in user (None when signed out).
        workspace_root: Open workspace root, or None if no workspace is open.
        active_file: Path of the file open in the editor, if known.
        cycle_in_flight: True while an orchestration cycle is running.
        closed: True after destroy().
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    identity: Optional[Credential] = None
    workspace_root: Optional[Path] = None
    active_file: Optional[Path] = None
    created_at: datetime = field(default_factory=datetime.now)
    cycle_in_flight: bool = False
    closed: bool = False
    _snapshot_cache: Optional[str] = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        workspace_root: Optional[str] = None,
        identity: Optional[Credential] = None,
        session_id: Optional[str] = None
    ) -> "SessionContext":
        """
        Create a session context.

        Args:
            workspace_root: Workspace root directory (None if no workspace).
            identity: Credential restored from settings, if any.
            session_id: Explicit id (generated when omitted).
        """
        context = cls(
            session_id=session_id or str(uuid.uuid4()),
            identity=identity,
            workspace_root=Path(workspace_root).resolve() if workspace_root else None,
        )
        logger.info(f"Session context created: {context.session_id}")
        return context

    # ========================================================================
    # IDENTITY
    # ========================================================================

    @property
    def is_signed_in(self) -> bool:
        return self.identity is not None

    @property
    def token(self) -> Optional[str]:
        return self.identity.token if self.identity else None

    def sign_in(self, credential: Credential) -> None:
        self._check_open()
        self.identity = credential
        logger.info(f"Session {self.session_id} signed in as {credential.email or '<unknown>'}")

    def sign_out(self) -> None:
        self.identity = None
        logger.info(f"Session {self.session_id} signed out")

    # ========================================================================
    # WORKSPACE
    # ========================================================================

    @property
    def working_directory(self) -> Path:
        """Workspace root, or the process current directory if none is open."""
        return self.workspace_root if self.workspace_root else Path.cwd()

    def set_workspace_root(self, root: Optional[str]) -> None:
        self._check_open()
        self.workspace_root = Path(root).resolve() if root else None
        self.invalidate_snapshot()

    def set_active_file(self, path: Optional[str]) -> None:
        self._check_open()
        self.active_file = Path(path) if path else None
        self.invalidate_snapshot()

    def workspace_snapshot(self, inspector: SnapshotProvider) -> str:
        """
        Get the workspace snapshot, computing it once until invalidated.

        Args:
            inspector: Workspace Inspector producing the snapshot text.
        """
        self._check_open()
        if self._snapshot_cache is None:
            self._snapshot_cache = inspector.snapshot()
            logger.debug(f"Workspace snapshot cached ({len(self._snapshot_cache)} chars)")
        return self._snapshot_cache

    def invalidate_snapshot(self) -> None:
        self._snapshot_cache = None

    @property
    def has_cached_snapshot(self) -> bool:
        return self._snapshot_cache is not None

    # ========================================================================
    # CYCLE GUARD
    # ========================================================================

    def begin_cycle(self) -> None:
        """
        Mark an orchestration cycle as started.

        Raises:
            CycleInFlightError: If a cycle is already running.
            SessionClosedError: If the context was destroyed.
        """
        self._check_open()
        if self.cycle_in_flight:
            raise CycleInFlightError(
                f"Session {self.session_id} is already running a cycle"
            )
        self.cycle_in_flight = True

    def end_cycle(self) -> None:
        self.cycle_in_flight = False

    @asynccontextmanager
    async def cycle(self):
        """
        Hold the cycle guard for the duration of a block.

        Example:
            >>> async with context.cycle():
            ...     await loop.plan(...)
        """
        self.begin_cycle()
        try:
            yield self
        finally:
            self.end_cycle()

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def destroy(self) -> None:
        """Release identity and caches; the context cannot be used afterwards."""
        self.identity = None
        self._snapshot_cache = None
        self.cycle_in_flight = False
        self.closed = True
        logger.info(f"Session context destroyed: {self.session_id}")

    def _check_open(self) -> None:
        if self.closed:
            raise SessionClosedError(f"Session {self.session_id} has been destroyed")


__all__ = [
    "Credential",
    "SessionContext",
    "CycleInFlightError",
    "SessionClosedError",
]
