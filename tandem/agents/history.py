"""
Conversation History for Tandem.

Bounded, ordered log of turns for one session. Source of:
- the rolling context window sent with each Model Gateway request
- the visible transcript replayed to a surface on (re)attach

Retention is FIFO: appending beyond the bound silently drops the oldest turn.
Truncation for context windows is applied to copies on the read path only.

An attached TranscriptStore receives every appended turn, so the transcript
survives a server restart (see tandem.core.db).
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Protocol

from tandem.agents.state import ConversationTurn, Message, Role
from tandem.core.guardrails import CONTEXT_TURN_MAX_CHARS, clip

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class TranscriptStore(Protocol):
    def save(self, role: str, content: str, keep: int) -> None: ...
    def load(self, limit: int) -> List[Dict[str, str]]: ...
    def clear(self) -> None: ...


class ConversationHistory:
    """
    Append-only bounded history.

    Example:
        >>> history = ConversationHistory(limit=50)
        >>> history.append(Message(role="user", text="list files"))
        >>> history.context_window(10)
        [{'role': 'user', 'content': 'list files'}]
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT):
        if limit < 1:
            raise ValueError(f"History limit must be positive, got {limit}")
        self.limit = limit
        self._turns: Deque[ConversationTurn] = deque(maxlen=limit)
        self._next_seq = 1
        self._store: Optional[TranscriptStore] = None

    def __len__(self) -> int:
        return len(self._turns)

    def attach_store(self, store: TranscriptStore) -> int:
        """
        Persist every future turn to ``store``.

        An empty history is first filled with the newest turns the store
        already holds (restored turns are not written back).

        Returns:
            Number of turns restored.
        """
        restored = 0
        if not self._turns:
            for entry in store.load(self.limit):
                self._stamp(Message(role=entry["role"], text=entry["content"]))
                restored += 1
        self._store = store

        if restored:
            logger.info(f"Restored {restored} persisted turns")
        return restored

    def append(self, message: Message) -> ConversationTurn:
        """
        Stamp and store a message, evicting the oldest turn when full.

        Args:
            message: Message to append.

        Returns:
            The stored ConversationTurn.
        """
        turn = self._stamp(message)
        if self._store is not None:
            self._store.save(message.role, message.text, self.limit)
        return turn

    def _stamp(self, message: Message) -> ConversationTurn:
        turn = ConversationTurn(seq=self._next_seq, message=message)
        self._next_seq += 1

        if len(self._turns) == self.limit:
            logger.debug(f"History full, evicting turn seq={self._turns[0].seq}")
        self._turns.append(turn)
        return turn

    def add(self, role: Role, text: str) -> ConversationTurn:
        return self.append(Message(role=role, text=text))

    def recent(self, n: int, max_chars: Optional[int] = None) -> List[ConversationTurn]:
        """
        Last n turns, oldest first.

        Args:
            n: Number of turns (n <= 0 returns []).
            max_chars: If given, each returned turn's text is cut to this many
                characters. Stored turns are untouched.
        """
        if n <= 0:
            return []

        turns = list(self._turns)[-n:]
        if max_chars is None:
            return turns

        return [
            turn if len(turn.text) <= max_chars
            else turn.model_copy(update={
                "message": Message(role=turn.role, text=clip(turn.text, max_chars))
            })
            for turn in turns
        ]

    def context_window(self, n: int, max_chars: int = CONTEXT_TURN_MAX_CHARS) -> List[Dict[str, str]]:
        """Last n turns as gateway history entries, each capped at max_chars."""
        return [
            {"role": turn.role, "content": turn.text}
            for turn in self.recent(n, max_chars=max_chars)
        ]

    def all(self) -> List[ConversationTurn]:
        return list(self._turns)

    def to_transcript(self) -> List[Dict[str, str]]:
        """Full retained history as {"role", "content"} dicts (restoreHistory)."""
        return [{"role": turn.role, "content": turn.text} for turn in self._turns]

    def clear(self) -> None:
        self._turns.clear()
        if self._store is not None:
            self._store.clear()
        logger.info("Conversation history cleared")


__all__ = ["ConversationHistory", "TranscriptStore", "DEFAULT_HISTORY_LIMIT"]
