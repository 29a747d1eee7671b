"""
Networked Bridge for Tandem Server.

Per-connection actor between a session and one WebSocket surface.

Key responsibilities:
1. Subscribe to the session's EventChannel and forward events as JSON
2. Replay the visible transcript (restoreHistory) and auth state on attach
3. Run loop operations (send, approvals, code actions) as tracked tasks so
   the receive loop keeps reading while a cycle is in flight; the loop itself
   rejects overlapping cycles
4. Detach without touching the session: history and approvals survive

Rebinding to a fresh session (after sign-out) is supported via rebind().
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from tandem.core.events import Event, iter_queue
from tandem.server.models import (
    MessageType,
    WSMessage,
    create_auth_state_message,
    create_error_message,
    create_message,
    create_restore_history_message,
)
from tandem.server.serializers import event_to_message
from tandem.server.session import Session

logger = logging.getLogger(__name__)


class NetworkedBridge:
    """
    Bridge between a session's EventChannel and a WebSocket.

    Usage:
        bridge = NetworkedBridge(session, websocket)
        await bridge.connect()
        bridge.spawn(session.loop.send("hello"))
        await bridge.disconnect()
    """

    def __init__(self, session: Session, websocket: WebSocket):
        self.session = session
        self.websocket = websocket
        self._queue: Optional[asyncio.Queue] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

        logger.info(f"NetworkedBridge created for session {session.session_id}")

    # ========================================================================
    # CONNECTION LIFECYCLE
    # ========================================================================

    async def connect(self) -> None:
        """
        Attach to the session and start forwarding its events.

        Sends the session state, the auth state, and (when history is not
        empty) restoreHistory directly to this surface only.
        """
        self._queue = self.session.channel.subscribe()
        self._consumer_task = asyncio.create_task(self._consume_events())
        self.session.connections += 1

        context = self.session.context
        await self.send_message(create_message(
            MessageType.STATE,
            state=self.session.loop.state.value,
            session_id=context.session_id,
        ))
        await self.send_message(create_auth_state_message(
            context.is_signed_in,
            context.identity.email if context.identity else "",
        ))

        transcript = self.session.loop.transcript()
        if transcript:
            await self.send_message(create_restore_history_message(transcript))

        for approval in self.session.loop.pending():
            await self.send_message(_action_message(approval))

        logger.info(f"NetworkedBridge connected for session {context.session_id}")

    async def disconnect(self) -> None:
        """
        Detach from the session.

        Loop tasks started by this connection keep running; their events
        are simply no longer delivered here.
        """
        if self._queue is not None:
            self.session.channel.unsubscribe(self._queue)
            self._queue = None
            self.session.connections = max(0, self.session.connections - 1)
            self.session.update_activity()

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        logger.info(f"NetworkedBridge disconnected for session {self.session.session_id}")

    async def rebind(self, session: Session) -> None:
        """Detach from the current session and attach to another one."""
        await self.disconnect()
        self.session = session
        await self.connect()

    # ========================================================================
    # EVENT CONSUMPTION
    # ========================================================================

    async def _consume_events(self) -> None:
        queue = self._queue
        try:
            async for event in iter_queue(queue):
                await self._process_event(event)
        except asyncio.CancelledError:
            logger.debug(f"Event consumer cancelled for session {self.session.session_id}")
            raise

    async def _process_event(self, event: Event) -> None:
        try:
            await self.send_message(event_to_message(event))
        except Exception as e:
            logger.error(f"Error forwarding event {event.type}: {e}", exc_info=True)

    # ========================================================================
    # TASKS
    # ========================================================================

    def spawn(self, operation: Awaitable) -> asyncio.Task:
        """
        Run a loop operation in the background and keep a reference to it.

        Failures are logged and reported to the surface as an error.
        """
        task = asyncio.ensure_future(self._guard(operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, operation: Awaitable) -> None:
        try:
            await operation
        except Exception as e:
            logger.error(f"Loop operation failed: {e}", exc_info=True)
            await self.send_error(f"Internal error: {e}")

    async def wait_idle(self) -> None:
        """Wait for every spawned task to finish (tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ========================================================================
    # MESSAGE SENDING
    # ========================================================================

    async def send_message(self, message: WSMessage) -> None:
        """Send a message over WebSocket, dropping it if the socket is gone."""
        if self.websocket.client_state != WebSocketState.CONNECTED:
            logger.warning(f"WebSocket not connected, dropping message: {message.type}")
            return

        try:
            await self.websocket.send_json(message.model_dump())
        except (RuntimeError, OSError) as e:
            logger.error(f"Failed to send WebSocket message: {e}")

    async def send_error(self, content: str) -> None:
        await self.send_message(create_error_message(content))


def _action_message(approval) -> WSMessage:
    """ACTION message re-announcing a pending approval on attach."""
    return create_message(
        MessageType.ACTION, actionType=approval.action_type, **approval.event_data()
    )


__all__ = ["NetworkedBridge"]
