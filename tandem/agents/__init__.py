"""
Agentic orchestration core for Tandem.

- state: messages, parsed actions, approvals, results, loop states
- parser: run/read/write block extraction from model text
- history: bounded conversation history and context windows
- gate: Execution Gate (human approval before any side effect)
- adapter: Model Gateway Adapter
- enrichment: inline workspace files for code questions
- runtime: Orchestration Loop state machine

Key Features:
- One cycle in flight per session; extra sends are rejected, not queued
- Human-in-the-loop approval for every command and file write
- Command results folded back to the model ("continue working")
"""

from tandem.agents.state import (
    Message,
    ConversationTurn,
    Text,
    RunCommand,
    ReadFile,
    WriteFile,
    ParsedAction,
    PendingApproval,
    CommandResult,
    WriteResult,
    Skipped,
    LoopState,
)
from tandem.agents.parser import parse, find_ambiguities, ParseAmbiguity
from tandem.agents.history import ConversationHistory
from tandem.agents.gate import ExecutionGate, ApprovalNotFoundError
from tandem.agents.adapter import ModelGatewayAdapter
from tandem.agents.runtime import OrchestrationLoop, LoopLimits

__all__ = [
    # State models
    "Message",
    "ConversationTurn",
    "Text",
    "RunCommand",
    "ReadFile",
    "WriteFile",
    "ParsedAction",
    "PendingApproval",
    "CommandResult",
    "WriteResult",
    "Skipped",
    "LoopState",

    # Parser
    "parse",
    "find_ambiguities",
    "ParseAmbiguity",

    # Components
    "ConversationHistory",
    "ExecutionGate",
    "ApprovalNotFoundError",
    "ModelGatewayAdapter",

    # Runtime
    "OrchestrationLoop",
    "LoopLimits",
]
