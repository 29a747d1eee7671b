"""
WebSocket Protocol Models for Tandem Server.

Defines Pydantic models for every message exchanged with a Presentation
Surface. All messages use one envelope: type, id, timestamp, payload.

Protocol Overview:
- Surface -> Server: send, approve_run, approve_write, skip, clearHistory,
  code_action, login, signout, set_active_file, ping
- Server -> Surface: thinking, status, response, action, error,
  restoreHistory, state, authState, loginError, pong
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# MESSAGE TYPES
# ============================================================================

class MessageType(str, Enum):
    """WebSocket message types for the Tandem protocol."""

    # Surface -> Server
    SEND = "send"
    APPROVE_RUN = "approve_run"
    APPROVE_WRITE = "approve_write"
    SKIP = "skip"
    CLEAR_HISTORY = "clearHistory"
    CODE_ACTION = "code_action"
    LOGIN = "login"
    SIGNOUT = "signout"
    SET_ACTIVE_FILE = "set_active_file"
    PING = "ping"

    # Server -> Surface
    THINKING = "thinking"
    STATUS = "status"
    RESPONSE = "response"
    ACTION = "action"
    ERROR = "error"
    RESTORE_HISTORY = "restoreHistory"
    STATE = "state"
    AUTH_STATE = "authState"
    LOGIN_ERROR = "loginError"
    PONG = "pong"


INBOUND_TYPES = {
    MessageType.SEND,
    MessageType.APPROVE_RUN,
    MessageType.APPROVE_WRITE,
    MessageType.SKIP,
    MessageType.CLEAR_HISTORY,
    MessageType.CODE_ACTION,
    MessageType.LOGIN,
    MessageType.SIGNOUT,
    MessageType.SET_ACTIVE_FILE,
    MessageType.PING,
}


# ============================================================================
# BASE MESSAGE ENVELOPE
# ============================================================================

class WSMessage(BaseModel):
    """
    Base WebSocket message envelope.

    Attributes:
        type: Message type (from MessageType enum).
        id: Unique message ID for correlation/tracking.
        timestamp: ISO 8601 timestamp of message creation.
        payload: Message-type-specific payload data.
    """
    model_config = ConfigDict(use_enum_values=True)

    type: MessageType
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    payload: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# SURFACE -> SERVER PAYLOADS
# ============================================================================

class SendPayload(BaseModel):
    """Payload for SEND: a new user message."""

    message: str = Field(..., min_length=1, description="User's message")


class ApproveRunPayload(BaseModel):
    """
    Payload for APPROVE_RUN.

    The surface echoes the command it showed; approval_id disambiguates when
    the same command is pending twice.
    """

    command: str = Field(..., description="Command being approved")
    approval_id: Optional[str] = Field(None, description="PendingApproval id")


class ApproveWritePayload(BaseModel):
    """Payload for APPROVE_WRITE (content may be edited by the user)."""

    file: str = Field(..., description="Target file path")
    content: str = Field(..., description="Content to write")
    approval_id: Optional[str] = Field(None, description="PendingApproval id")


class SkipPayload(BaseModel):
    """Payload for SKIP: decline a pending approval."""

    approval_id: str = Field(..., description="PendingApproval id")


class CodeActionPayload(BaseModel):
    """Payload for CODE_ACTION: an editor selection plus the requested action."""

    action: Literal["explain", "refactor", "test", "fix", "docs"]
    code: str = Field(..., min_length=1)
    language: str = Field(default="plaintext")


class LoginPayload(BaseModel):
    """Payload for LOGIN."""

    email: str
    password: str


class SetActiveFilePayload(BaseModel):
    """Payload for SET_ACTIVE_FILE (None when no editor is open)."""

    path: Optional[str] = None


# ============================================================================
# SERVER -> SURFACE PAYLOADS
# ============================================================================

class ContentPayload(BaseModel):
    """Payload for THINKING, STATUS, RESPONSE, ERROR and LOGIN_ERROR."""

    content: str


class ActionPayload(BaseModel):
    """
    Payload for ACTION: a PendingApproval needing a user decision.

    Attributes:
        actionType: "run" or "write".
        approval_id: Id to echo back in approve/skip messages.
        command: Command of a run block.
        file: Target path of a write block.
        content: Content of a write block.
        risk: {"level", "reason"} of a run block.
    """

    actionType: Literal["run", "write"]
    approval_id: str
    command: Optional[str] = None
    file: Optional[str] = None
    content: Optional[str] = None
    risk: Optional[Dict[str, Optional[str]]] = None


class RestoreHistoryPayload(BaseModel):
    """Payload for RESTORE_HISTORY: visible transcript, oldest first."""

    messages: List[Dict[str, str]] = Field(default_factory=list)


class AuthStatePayload(BaseModel):
    """Payload for AUTH_STATE."""

    signedIn: bool
    email: str = ""


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def create_message(message_type: MessageType, **payload: Any) -> WSMessage:
    """Create an outbound message with a free-form payload."""
    return WSMessage(type=message_type, payload=payload)


def create_error_message(message: str) -> WSMessage:
    """Create an ERROR message."""
    return WSMessage(
        type=MessageType.ERROR,
        payload=ContentPayload(content=message).model_dump()
    )


def create_auth_state_message(signed_in: bool, email: str = "") -> WSMessage:
    """Create an AUTH_STATE message."""
    return WSMessage(
        type=MessageType.AUTH_STATE,
        payload=AuthStatePayload(signedIn=signed_in, email=email).model_dump()
    )


def create_restore_history_message(messages: List[Dict[str, str]]) -> WSMessage:
    """Create a RESTORE_HISTORY message."""
    return WSMessage(
        type=MessageType.RESTORE_HISTORY,
        payload=RestoreHistoryPayload(messages=messages).model_dump()
    )


def create_pong_message(timestamp: Optional[str] = None) -> WSMessage:
    """Create a PONG message in response to PING."""
    return WSMessage(
        type=MessageType.PONG,
        payload={"timestamp": timestamp or datetime.now().isoformat()}
    )


__all__ = [
    # Enums
    "MessageType",
    "INBOUND_TYPES",
    # Models
    "WSMessage",
    "SendPayload",
    "ApproveRunPayload",
    "ApproveWritePayload",
    "SkipPayload",
    "CodeActionPayload",
    "LoginPayload",
    "SetActiveFilePayload",
    "ContentPayload",
    "ActionPayload",
    "RestoreHistoryPayload",
    "AuthStatePayload",
    # Helper functions
    "create_message",
    "create_error_message",
    "create_auth_state_message",
    "create_restore_history_message",
    "create_pong_message",
]
