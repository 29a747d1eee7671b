"""
Serialization Utilities for Tandem Server.

Converts between the core's objects and the JSON envelopes on the wire:
- event_to_message(): EventChannel Event -> outbound WSMessage
- parse_inbound(): raw JSON dict -> (MessageType, validated payload)

Handles:
- Pydantic BaseModel instances (approvals, results)
- datetime objects -> ISO 8601 strings
- Path objects -> string paths
- Enums -> values
- Nested dicts and lists
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from tandem.core.events import Event
from tandem.server.models import (
    INBOUND_TYPES,
    ApproveRunPayload,
    ApproveWritePayload,
    CodeActionPayload,
    LoginPayload,
    MessageType,
    SendPayload,
    SetActiveFilePayload,
    SkipPayload,
    WSMessage,
)

logger = logging.getLogger(__name__)


class ProtocolError(ValueError):
    """Raised when an inbound message is malformed or of an unknown type."""
    pass


# ============================================================================
# OUTBOUND
# ============================================================================

def serialize_event_data(data: Any) -> Dict[str, Any]:
    """
    Serialize event data to a JSON-safe dictionary.

    Args:
        data: Any Python object to serialize.

    Returns:
        JSON-safe dictionary representation.
    """
    if data is None:
        return {}

    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")

    if isinstance(data, dict):
        return {k: _serialize_value(v) for k, v in data.items()}

    return {"value": _serialize_value(data)}


def _serialize_value(value: Any) -> Any:
    if value is None:
        return None

    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")

    if isinstance(value, datetime):
        return value.isoformat()

    if isinstance(value, Path):
        return str(value)

    if isinstance(value, (str, int, float, bool)):
        return value

    # Enums
    if hasattr(value, "value"):
        return value.value

    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [_serialize_value(v) for v in value]

    return str(value)


def event_to_message(event: Event) -> WSMessage:
    """
    Convert a channel event into an outbound envelope.

    Example:
        >>> event_to_message(Event(EventType.RESPONSE, {"content": "Done"})).payload
        {'content': 'Done'}
    """
    event_type = event.type.value if hasattr(event.type, "value") else str(event.type)
    return WSMessage(
        type=MessageType(event_type),
        timestamp=event.timestamp,
        payload=serialize_event_data(event.data),
    )


# ============================================================================
# INBOUND
# ============================================================================

PAYLOAD_MODELS: Dict[MessageType, Optional[Type[BaseModel]]] = {
    MessageType.SEND: SendPayload,
    MessageType.APPROVE_RUN: ApproveRunPayload,
    MessageType.APPROVE_WRITE: ApproveWritePayload,
    MessageType.SKIP: SkipPayload,
    MessageType.CODE_ACTION: CodeActionPayload,
    MessageType.LOGIN: LoginPayload,
    MessageType.SET_ACTIVE_FILE: SetActiveFilePayload,
    MessageType.CLEAR_HISTORY: None,
    MessageType.SIGNOUT: None,
    MessageType.PING: None,
}


def parse_inbound(raw: Dict[str, Any]) -> Tuple[MessageType, Optional[BaseModel]]:
    """
    Validate an inbound message.

    Accepts both the envelope form ``{"type", "payload": {...}}`` and the
    flat form ``{"type", ...fields}`` that editor webviews post.

    Returns:
        (message type, payload model or None for payload-less types)

    Raises:
        ProtocolError: Unknown type or invalid payload.
    """
    if not isinstance(raw, dict):
        raise ProtocolError("Message must be a JSON object")

    try:
        message_type = MessageType(raw.get("type"))
    except ValueError as e:
        raise ProtocolError(f"Unknown message type: {raw.get('type')}") from e

    if message_type not in INBOUND_TYPES:
        raise ProtocolError(f"Not an inbound message type: {message_type.value}")

    model = PAYLOAD_MODELS[message_type]
    if model is None:
        return message_type, None

    fields = raw.get("payload")
    if not isinstance(fields, dict):
        fields = {k: v for k, v in raw.items() if k not in ("type", "id", "timestamp")}

    try:
        return message_type, model.model_validate(fields)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {message_type.value} payload: {e.errors()[0]['msg']}") from e


__all__ = [
    "ProtocolError",
    "serialize_event_data",
    "event_to_message",
    "parse_inbound",
    "PAYLOAD_MODELS",
]
