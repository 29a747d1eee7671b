"""
Per-Session Event Channel for Tandem.

The Orchestration Loop never talks to the Presentation Surface directly. It
publishes typed outbound events to the session's EventChannel; whoever is
attached (the WebSocket bridge, a test) subscribes and renders them.

Outbound event kinds:
- thinking: transient "working" indicator
- status: transient sub-status during a cycle
- response: finalized text to append to the visible transcript
- action: a PendingApproval needing a user decision
- error: a failure surfaced to the user
- state / authState / loginError: loop state and sign-in feedback

One channel per session; channels are never shared across sessions.
"""

import asyncio
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# EVENT TYPES
# ============================================================================

class EventType(str, Enum):
    """Outbound event kinds (core -> Presentation Surface)."""

    THINKING = "thinking"
    STATUS = "status"
    RESPONSE = "response"
    ACTION = "action"
    ERROR = "error"

    # Loop and session lifecycle
    STATE = "state"
    AUTH_STATE = "authState"
    LOGIN_ERROR = "loginError"


# ============================================================================
# EVENT MODEL
# ============================================================================

class Event:
    """
    Generic event container.

    Attributes:
        type: Event type (from EventType enum).
        data: Event payload (dict with event-specific data).
        timestamp: ISO timestamp of event creation.
    """

    def __init__(self, event_type: EventType, data: Optional[Dict[str, Any]] = None):
        self.type = event_type
        self.data = data or {}
        self.timestamp = datetime.now().isoformat()

    def __repr__(self) -> str:
        return f"Event(type={self.type}, data={self.data}, timestamp={self.timestamp})"


# ============================================================================
# EVENT CHANNEL
# ============================================================================

class EventChannel:
    """
    Async fan-out channel using asyncio.Queue, scoped to one session.

    Supports:
    - Publishing events to all subscribers
    - Multiple concurrent subscribers (e.g. a surface re-attaching)
    - Clean shutdown (None sentinel)

    Events published with no subscriber attached are dropped; the durable
    record is Conversation History, which is replayed on attach.
    """

    def __init__(self, name: str = "session"):
        self.name = name
        self._queues: List[asyncio.Queue] = []
        self._shutdown = False

        logger.debug(f"EventChannel initialized: {name}")

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue:
        """
        Subscribe to the event stream.

        Returns:
            asyncio.Queue that will receive events.

        Example:
            >>> queue = channel.subscribe()
            >>> async for event in iter_queue(queue):
            ...     print(f"Received: {event.type}")
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        logger.debug(f"[{self.name}] new subscriber (total: {len(self._queues)})")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """
        Unsubscribe from the event stream.

        Args:
            queue: The queue to remove.
        """
        if queue in self._queues:
            self._queues.remove(queue)
            logger.debug(f"[{self.name}] subscriber removed (total: {len(self._queues)})")

    async def publish(self, event: Event) -> None:
        """
        Publish event to all subscribers.

        Args:
            event: Event to publish.
        """
        if self._shutdown:
            logger.warning(f"[{self.name}] channel is shut down, ignoring {event.type}")
            return

        for queue in self._queues:
            await queue.put(event)

        logger.debug(f"[{self.name}] published {event.type} to {len(self._queues)} subscribers")

    async def shutdown(self) -> None:
        """
        Shut down the channel and release all subscribers.

        Sends None sentinel to all queues to signal shutdown.
        """
        self._shutdown = True
        for queue in self._queues:
            await queue.put(None)
        self._queues.clear()
        logger.info(f"[{self.name}] EventChannel shut down")

    # ========================================================================
    # CONVENIENCE EMITTERS
    # ========================================================================

    async def emit(self, event_type: EventType, **data: Any) -> None:
        await self.publish(Event(event_type, data))

    async def emit_thinking(self, content: str) -> None:
        await self.emit(EventType.THINKING, content=content)

    async def emit_status(self, content: str) -> None:
        await self.emit(EventType.STATUS, content=content)

    async def emit_response(self, content: str) -> None:
        await self.emit(EventType.RESPONSE, content=content)

    async def emit_error(self, content: str) -> None:
        await self.emit(EventType.ERROR, content=content)

    async def emit_action(self, action_type: str, **data: Any) -> None:
        """
        Emit a pending approval.

        Args:
            action_type: "run" or "write".
            **data: approval_id plus command, or file and content.
        """
        await self.emit(EventType.ACTION, actionType=action_type, **data)

    async def emit_state(self, state: str) -> None:
        await self.emit(EventType.STATE, state=state)


# ============================================================================
# ASYNC QUEUE HELPERS
# ============================================================================

async def iter_queue(queue: asyncio.Queue):
    """
    Async iterator for asyncio.Queue.

    Yields items from queue until None sentinel is received.

    Args:
        queue: asyncio.Queue to iterate over.

    Yields:
        Items from queue until None is received.
    """
    while True:
        item = await queue.get()
        if item is None:  # Shutdown sentinel
            break
        yield item


def drain_queue(queue: asyncio.Queue) -> List[Event]:
    """Collect every event currently buffered in a queue without waiting."""
    events = []
    while not queue.empty():
        item = queue.get_nowait()
        if item is not None:
            events.append(item)
    return events


__all__ = [
    "EventType",
    "Event",
    "EventChannel",
    "iter_queue",
    "drain_queue",
]
