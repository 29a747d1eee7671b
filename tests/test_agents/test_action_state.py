"""
Tests for tandem/agents/state.py - Orchestration State Schema.

Tests:
- Immutability of messages and parsed actions
- PendingApproval identifiers and outbound event data
- CommandResult success rules
"""

import pytest
from pydantic import ValidationError

from tandem.agents.state import (
    CommandResult,
    ConversationTurn,
    LoopState,
    Message,
    PendingApproval,
    RunCommand,
    Skipped,
    WriteFile,
)


class TestMessages:
    """Tests for Message and ConversationTurn."""

    def test_message_is_frozen(self):
        message = Message(role="user", text="hello")

        with pytest.raises(ValidationError):
            message.text = "changed"

    def test_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            Message(role="tool", text="hello")

    def test_turn_exposes_message_fields(self):
        turn = ConversationTurn(seq=3, message=Message(role="assistant", text="hi"))

        assert turn.role == "assistant"
        assert turn.text == "hi"


class TestPendingApproval:
    """Tests for PendingApproval."""

    def test_ids_are_unique(self):
        first = PendingApproval(action=RunCommand(command="ls"))
        second = PendingApproval(action=RunCommand(command="ls"))

        assert first.id != second.id

    def test_run_event_data(self):
        approval = PendingApproval(
            action=RunCommand(command="rm -rf build"),
            risk_level="HIGH",
            risk_reason="Destructive command",
        )

        data = approval.event_data()

        assert approval.action_type == "run"
        assert data["approval_id"] == approval.id
        assert data["command"] == "rm -rf build"
        assert data["risk"] == {"level": "HIGH", "reason": "Destructive command"}

    def test_write_event_data(self):
        approval = PendingApproval(action=WriteFile(path="a.txt", content="x\n"))

        data = approval.event_data()

        assert approval.action_type == "write"
        assert data == {"approval_id": approval.id, "file": "a.txt", "content": "x\n"}

    def test_action_discriminated_from_dict(self):
        approval = PendingApproval(action={"kind": "write", "path": "b.txt", "content": ""})

        assert isinstance(approval.action, WriteFile)

    def test_skipped_keeps_action(self):
        skipped = Skipped(approval_id="abc", action=RunCommand(command="ls"))

        assert skipped.action.command == "ls"


class TestCommandResult:
    """Tests for CommandResult."""

    def test_zero_exit_succeeds(self):
        result = CommandResult(approval_id="a", command="ls", exit_code=0)

        assert result.succeeded

    def test_timeout_is_not_success(self):
        result = CommandResult(approval_id="a", command="sleep 9", exit_code=0, timed_out=True)

        assert not result.succeeded

    def test_nonzero_exit_is_data(self):
        result = CommandResult(approval_id="a", command="false", exit_code=1)

        assert not result.succeeded
        assert result.output == ""


def test_loop_state_values():
    assert LoopState.AWAITING_APPROVAL.value == "awaiting_approval"
    assert LoopState("idle") is LoopState.IDLE
