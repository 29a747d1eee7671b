"""
WebSocket Endpoint Handler for Tandem Server.

Provides the endpoint a Presentation Surface attaches to, and routes its
inbound messages to the session's Orchestration Loop.

Protocol:
1. Surface connects to /ws?session_id=<id>&workspace_root=<path>
   (both optional; an unknown or missing session_id starts a new session)
2. Server sends state (with the session_id), authState, restoreHistory when
   history is not empty, and any still-pending actions
3. Surface sends send / approve_run / approve_write / skip / ...
4. Server streams thinking, status, response, action, error, state
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from tandem.core.gateway import AuthError
from tandem.core.settings import get_settings_manager
from tandem.server.bridge import NetworkedBridge
from tandem.server.models import (
    MessageType,
    create_auth_state_message,
    create_message,
    create_pong_message,
)
from tandem.server.serializers import ProtocolError, parse_inbound
from tandem.server.session import get_session_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    session_id: Optional[str] = Query(None),
    workspace_root: Optional[str] = Query(None)
):
    """
    Main WebSocket endpoint for Tandem surfaces.

    The session outlives the connection: disconnecting only detaches the
    bridge.
    """
    await websocket.accept()

    session_manager = get_session_manager()
    session = await session_manager.get_or_create(session_id, workspace_root=workspace_root)

    bridge = NetworkedBridge(session, websocket)
    await bridge.connect()

    logger.info(f"WebSocket connected: session {session.session_id}")

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError as e:
                await send_error(bridge, f"Invalid JSON: {e}")
                continue

            await handle_message(bridge, data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: session {bridge.session.session_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        await bridge.disconnect()
        logger.info(f"WebSocket cleanup complete: session {bridge.session.session_id}")


async def handle_message(bridge: NetworkedBridge, data: Dict[str, Any]) -> None:
    """
    Route an inbound message to its handler.

    Args:
        bridge: The connection's bridge (holds the session).
        data: Raw JSON object received from the surface.
    """
    try:
        message_type, payload = parse_inbound(data)
    except ProtocolError as e:
        logger.warning(f"Rejected inbound message: {e}")
        await send_error(bridge, str(e))
        return

    bridge.session.update_activity()
    handler = HANDLERS[message_type]
    await handler(bridge, payload)


# ============================================================================
# LOOP MESSAGES (run in the background, the loop rejects overlaps)
# ============================================================================

async def handle_send(bridge: NetworkedBridge, payload) -> None:
    bridge.spawn(bridge.session.loop.send(payload.message))


async def handle_code_action(bridge: NetworkedBridge, payload) -> None:
    bridge.spawn(bridge.session.loop.code_action(payload.action, payload.code, payload.language))


async def handle_approve_run(bridge: NetworkedBridge, payload) -> None:
    bridge.spawn(bridge.session.loop.resolve_run_by_command(
        payload.command, approval_id=payload.approval_id
    ))


async def handle_approve_write(bridge: NetworkedBridge, payload) -> None:
    bridge.spawn(bridge.session.loop.resolve_write_by_path(
        payload.file, content=payload.content, approval_id=payload.approval_id
    ))


async def handle_skip(bridge: NetworkedBridge, payload) -> None:
    await bridge.session.loop.resolve(payload.approval_id, approved=False)


# ============================================================================
# SESSION MESSAGES
# ============================================================================

async def handle_clear_history(bridge: NetworkedBridge, payload) -> None:
    bridge.session.loop.clear_history()
    await bridge.send_message(create_message(MessageType.RESTORE_HISTORY, messages=[]))


async def handle_set_active_file(bridge: NetworkedBridge, payload) -> None:
    bridge.session.context.set_active_file(payload.path)


async def handle_login(bridge: NetworkedBridge, payload) -> None:
    """Sign in through the gateway; the credential is persisted for new sessions."""
    try:
        credential = await bridge.session.loop.adapter.sign_in(payload.email, payload.password)
    except AuthError as e:
        logger.warning(f"Sign-in failed for {payload.email}: {e}")
        await bridge.send_message(create_message(MessageType.LOGIN_ERROR, content=str(e)))
        return

    bridge.session.context.sign_in(credential)
    get_settings_manager().save_auth(credential.token, credential.email)
    await bridge.send_message(create_auth_state_message(True, credential.email))


async def handle_signout(bridge: NetworkedBridge, payload) -> None:
    """
    Sign out: forget the credential, end the session and delete its
    persisted transcript.

    The connection is rebound to a fresh, signed-out session.
    """
    get_settings_manager().clear_auth()

    session_manager = get_session_manager()
    old_id = bridge.session.session_id
    fresh = await session_manager.get_or_create(
        None,
        workspace_root=str(bridge.session.context.workspace_root or "") or None,
    )
    await bridge.rebind(fresh)
    await session_manager.destroy_session(old_id, forget_history=True)
    logger.info(f"Session {old_id} signed out, connection moved to {fresh.session_id}")


async def handle_ping(bridge: NetworkedBridge, payload) -> None:
    await bridge.send_message(create_pong_message())


HANDLERS = {
    MessageType.SEND: handle_send,
    MessageType.CODE_ACTION: handle_code_action,
    MessageType.APPROVE_RUN: handle_approve_run,
    MessageType.APPROVE_WRITE: handle_approve_write,
    MessageType.SKIP: handle_skip,
    MessageType.CLEAR_HISTORY: handle_clear_history,
    MessageType.SET_ACTIVE_FILE: handle_set_active_file,
    MessageType.LOGIN: handle_login,
    MessageType.SIGNOUT: handle_signout,
    MessageType.PING: handle_ping,
}


async def send_error(bridge: NetworkedBridge, message: str) -> None:
    """Send an error message to the surface."""
    await bridge.send_error(message)


__all__ = ["router", "handle_message", "send_error", "HANDLERS"]
