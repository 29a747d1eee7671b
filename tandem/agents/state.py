"""
Orchestration State Schema for Tandem.

Defines the data model shared by the parser, the Execution Gate, the
Conversation History and the Orchestration Loop:
- Message / ConversationTurn (immutable history entries)
- ParsedAction variants: Text, RunCommand, ReadFile, WriteFile
- PendingApproval (a run or write block waiting for the user)
- Execution results: CommandResult, WriteResult, Skipped
- LoopState (Idle, Planning, AwaitingApproval, Executing, Analyzing)
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# MESSAGES
# ============================================================================

Role = Literal["user", "assistant", "system"]


class Message(BaseModel):
    """
    Role-tagged message. Immutable once created.

    Attributes:
        role: "user", "assistant" or "system".
        text: Message text.
    """
    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="Message author role")
    text: str = Field(..., description="Message text")


class ConversationTurn(BaseModel):
    """
    A Message stamped by the Conversation History.

    Attributes:
        seq: Monotonically increasing sequence number (never reused).
        message: The stored message.
        timestamp: Creation time.
    """
    model_config = ConfigDict(frozen=True)

    seq: int = Field(..., description="Monotonic sequence number")
    message: Message
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def role(self) -> str:
        return self.message.role

    @property
    def text(self) -> str:
        return self.message.text


# ============================================================================
# PARSED ACTIONS
# ============================================================================

class Text(BaseModel):
    """Prose to surface verbatim."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    content: str


class RunCommand(BaseModel):
    """A shell command, not yet executed."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["run"] = "run"
    command: str


class ReadFile(BaseModel):
    """A path to read and fold back into the conversation."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["read"] = "read"
    path: str


class WriteFile(BaseModel):
    """Content to persist once approved."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["write"] = "write"
    path: str
    content: str


ParsedAction = Union[Text, RunCommand, ReadFile, WriteFile]
GatedAction = Union[RunCommand, WriteFile]


# ============================================================================
# APPROVALS AND RESULTS
# ============================================================================

class PendingApproval(BaseModel):
    """
    A run or write block waiting for an explicit user decision.

    Attributes:
        id: Approval identifier (echoed back by the surface).
        action: The gated action.
        created_at: Creation time.
        chains: True if approving this run block triggers re-planning.
        risk_level: LOW/MEDIUM/HIGH label for run blocks (informational).
        risk_reason: Why the label was chosen.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    action: GatedAction = Field(..., discriminator="kind")
    created_at: datetime = Field(default_factory=datetime.now)
    chains: bool = Field(default=False)
    risk_level: Optional[Literal["LOW", "MEDIUM", "HIGH"]] = None
    risk_reason: Optional[str] = None

    @property
    def action_type(self) -> str:
        return self.action.kind

    def event_data(self) -> Dict[str, Any]:
        """Fields of the outbound ``action`` message (besides actionType)."""
        if isinstance(self.action, RunCommand):
            return {
                "approval_id": self.id,
                "command": self.action.command,
                "risk": {"level": self.risk_level, "reason": self.risk_reason},
            }
        return {
            "approval_id": self.id,
            "file": self.action.path,
            "content": self.action.content,
        }


class CommandResult(BaseModel):
    """
    Outcome of an approved run block.

    A non-zero exit or host failure is data here, never an exception.
    """
    approval_id: str
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    output: str = Field("", description="Combined stripped output, bounded")
    truncated: bool = False
    timed_out: bool = False
    buffer_exceeded: bool = False
    cwd: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class WriteResult(BaseModel):
    """Outcome of an approved write block."""
    approval_id: str
    path: str
    success: bool
    message: str


class Skipped(BaseModel):
    """A declined approval. Nothing was executed."""
    approval_id: str
    action: GatedAction = Field(..., discriminator="kind")


ExecutionResult = Union[CommandResult, WriteResult]


# ============================================================================
# LOOP STATE
# ============================================================================

class LoopState(str, Enum):
    """Orchestration Loop states."""

    IDLE = "idle"
    PLANNING = "planning"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"
    ANALYZING = "analyzing"


__all__ = [
    "Role",
    "Message",
    "ConversationTurn",
    "Text",
    "RunCommand",
    "ReadFile",
    "WriteFile",
    "ParsedAction",
    "GatedAction",
    "PendingApproval",
    "CommandResult",
    "WriteResult",
    "Skipped",
    "ExecutionResult",
    "LoopState",
]
