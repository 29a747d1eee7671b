"""
Transcript Persistence for Tandem.

Uses SQLite to keep each session's bounded conversation history across
server restarts:
- Every appended turn is written as it happens
- Only the newest ``keep`` turns of a session are retained
- A surface reattaching with its session_id after a restart gets the
  transcript back

Database is stored next to config.json (SettingsManager.config_dir).
"""

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# ============================================================================
# DATABASE SCHEMA
# ============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    workspace_root TEXT
);

CREATE TABLE IF NOT EXISTS turns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE INDEX IF NOT EXISTS idx_turns_session_id
ON turns(session_id);
"""


# ============================================================================
# DATABASE CONNECTION MANAGER
# ============================================================================

class TranscriptDB:
    """
    SQLite store of per-session transcripts.

    Write failures are logged and reported as False; they never interrupt
    an orchestration cycle.
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize the database file.

        Args:
            db_path: Path of the SQLite file (parent directories are created).
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

        logger.info(f"TranscriptDB initialized: {self.db_path}")

    def _init_db(self) -> None:
        """Create database tables if they don't exist."""
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                conn.executescript(SCHEMA_SQL)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # ========================================================================
    # TURNS
    # ========================================================================

    def save_turn(
        self,
        session_id: str,
        role: str,
        content: str,
        keep: int,
        workspace_root: Optional[str] = None
    ) -> bool:
        """
        Append one turn and drop the session's turns beyond the newest ``keep``.

        Returns:
            True if the write succeeded.
        """
        now = datetime.now().isoformat()
        try:
            with closing(self._get_connection()) as conn:
                conn.execute(
                    """
                    INSERT INTO sessions (id, created_at, updated_at, workspace_root)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at
                    """,
                    (session_id, now, now, workspace_root)
                )
                conn.execute(
                    """
                    INSERT INTO turns (session_id, role, content, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (session_id, role, content, now)
                )
                conn.execute(
                    """
                    DELETE FROM turns
                    WHERE session_id = ? AND id NOT IN (
                        SELECT id FROM turns WHERE session_id = ?
                        ORDER BY id DESC LIMIT ?
                    )
                    """,
                    (session_id, session_id, keep)
                )
                conn.commit()
            return True

        except sqlite3.Error as e:
            logger.error(f"Failed to save turn for session {session_id}: {e}")
            return False

    def load_turns(self, session_id: str, limit: int) -> List[Dict[str, str]]:
        """
        Newest ``limit`` turns of a session, oldest first.

        Returns:
            [{"role", "content"}, ...] (empty when unknown or on error).
        """
        try:
            with closing(self._get_connection()) as conn:
                cursor = conn.execute(
                    """
                    SELECT role, content FROM (
                        SELECT id, role, content FROM turns
                        WHERE session_id = ?
                        ORDER BY id DESC LIMIT ?
                    ) ORDER BY id ASC
                    """,
                    (session_id, limit)
                )
                return [dict(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            logger.error(f"Failed to load transcript for session {session_id}: {e}")
            return []

    def clear_session(self, session_id: str) -> bool:
        """Delete a session's turns (and its row)."""
        try:
            with closing(self._get_connection()) as conn:
                conn.execute("DELETE FROM turns WHERE session_id = ?", (session_id,))
                conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
                conn.commit()
            logger.info(f"Cleared persisted transcript: {session_id}")
            return True

        except sqlite3.Error as e:
            logger.error(f"Failed to clear transcript for session {session_id}: {e}")
            return False

    def prune(self, older_than_days: int) -> int:
        """
        Delete sessions not updated within ``older_than_days``.

        Returns:
            Number of sessions removed.
        """
        cutoff = (datetime.now() - timedelta(days=older_than_days)).isoformat()
        try:
            with closing(self._get_connection()) as conn:
                stale = [
                    row["id"] for row in conn.execute(
                        "SELECT id FROM sessions WHERE updated_at < ?", (cutoff,)
                    ).fetchall()
                ]
                for session_id in stale:
                    conn.execute("DELETE FROM turns WHERE session_id = ?", (session_id,))
                    conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
                conn.commit()

            if stale:
                logger.info(f"Pruned {len(stale)} persisted transcripts")
            return len(stale)

        except sqlite3.Error as e:
            logger.error(f"Failed to prune transcripts: {e}")
            return 0


# ============================================================================
# SESSION BINDING
# ============================================================================

class SessionTranscript:
    """
    TranscriptDB bound to one session; the store ConversationHistory writes to.
    """

    def __init__(
        self,
        db: TranscriptDB,
        session_id: str,
        workspace_root: Optional[str] = None
    ):
        self.db = db
        self.session_id = session_id
        self.workspace_root = workspace_root

    def save(self, role: str, content: str, keep: int) -> None:
        self.db.save_turn(self.session_id, role, content, keep, self.workspace_root)

    def load(self, limit: int) -> List[Dict[str, str]]:
        return self.db.load_turns(self.session_id, limit)

    def clear(self) -> None:
        self.db.clear_session(self.session_id)


__all__ = ["TranscriptDB", "SessionTranscript", "SCHEMA_SQL"]
