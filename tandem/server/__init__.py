"""
Tandem WebSocket Server Package.

Provides the FastAPI + WebSocket layer Presentation Surfaces attach to.

Usage:
    # Start server
    python -m tandem.server.main

    # Or programmatically
    from tandem.server.main import run_server
    run_server(host="127.0.0.1", port=8765)
"""

from tandem.server.models import MessageType, WSMessage
from tandem.server.session import (
    Session,
    SessionManager,
    get_session_manager,
)
from tandem.server.bridge import NetworkedBridge
from tandem.server.serializers import event_to_message, parse_inbound

__all__ = [
    # Models
    "MessageType",
    "WSMessage",
    # Session
    "Session",
    "SessionManager",
    "get_session_manager",
    # Bridge
    "NetworkedBridge",
    # Serializers
    "event_to_message",
    "parse_inbound",
]
