"""
Tests for tandem/agents/gate.py - Execution Gate.

Tests:
- Approval creation (risk labels, chaining flag)
- Run execution through the host, output bounding
- Write execution, edited content, failures as data
- Skip and at-most-once resolution
"""

import pytest

from tandem.agents.gate import ApprovalNotFoundError, ExecutionGate
from tandem.agents.state import (
    CommandResult,
    ReadFile,
    RunCommand,
    Skipped,
    Text,
    WriteFile,
    WriteResult,
)
from tandem.core.session import SessionContext


@pytest.fixture
def context(temp_workspace):
    return SessionContext.create(workspace_root=str(temp_workspace))


class TestRequest:
    """Tests for ExecutionGate.request()."""

    def test_run_gets_risk_label(self, context, host):
        gate = ExecutionGate(context, host=host)

        approval = gate.request(RunCommand(command="rm -rf build"), chains=True)

        assert approval.action_type == "run"
        assert approval.risk_level == "HIGH"
        assert approval.chains is True
        assert gate.get(approval.id) is approval
        assert len(gate) == 1

    def test_write_never_chains(self, context, host):
        gate = ExecutionGate(context, host=host)

        approval = gate.request(WriteFile(path="a.txt", content="A"), chains=True)

        assert approval.chains is False
        assert approval.risk_level is None
        assert approval.event_data() == {
            "approval_id": approval.id,
            "file": "a.txt",
            "content": "A",
        }

    def test_ungated_actions_are_rejected(self, context, host):
        gate = ExecutionGate(context, host=host)

        with pytest.raises(ValueError):
            gate.request(Text(content="hi"))
        with pytest.raises(ValueError):
            gate.request(ReadFile(path="a.txt"))

    def test_pending_lookup_helpers(self, context, host):
        gate = ExecutionGate(context, host=host)
        run = gate.request(RunCommand(command="npm test"))
        write = gate.request(WriteFile(path="out.txt", content="x"))

        assert gate.pending() == [run, write]
        assert gate.find_run("npm test") is run
        assert gate.find_run("npm build") is None
        assert gate.find_write("out.txt") is write

        gate.clear()
        assert len(gate) == 0


class TestResolve:
    """Tests for ExecutionGate.resolve()."""

    @pytest.mark.asyncio
    async def test_approved_run_invokes_host(self, context, host, temp_workspace):
        host.results["ls"] = {"exit_code": 0, "stdout": "a.txt\nb.txt\n", "stderr": ""}
        gate = ExecutionGate(context, host=host, timeout=30)
        approval = gate.request(RunCommand(command="ls"))

        result = await gate.resolve(approval.id, approved=True)

        assert isinstance(result, CommandResult)
        assert result.exit_code == 0
        assert result.output == "a.txt\nb.txt"
        assert result.succeeded
        command, cwd, timeout, session_id = host.commands[0]
        assert command == "ls"
        assert cwd == temp_workspace.resolve()
        assert timeout == 30
        assert session_id == context.session_id
        assert len(gate) == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_data(self, context, host):
        host.results["npm test"] = {"exit_code": 1, "stdout": "", "stderr": "1 failing"}
        gate = ExecutionGate(context, host=host)
        approval = gate.request(RunCommand(command="npm test"))

        result = await gate.resolve(approval.id, approved=True)

        assert result.exit_code == 1
        assert result.output == "1 failing"
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_output_is_bounded(self, context, host):
        host.results["cat big"] = {"exit_code": 0, "stdout": "x" * 500, "stderr": ""}
        gate = ExecutionGate(context, host=host, output_chars=100)
        approval = gate.request(RunCommand(command="cat big"))

        result = await gate.resolve(approval.id, approved=True)

        assert result.truncated is True
        assert result.output.startswith("x" * 100)
        assert "truncated" in result.output
        assert len(result.stdout) == 500

    @pytest.mark.asyncio
    async def test_host_failure_becomes_exit_minus_one(self, context):
        class BrokenHost:
            def run_command(self, *args, **kwargs):
                raise RuntimeError("spawn failed")

        gate = ExecutionGate(context, host=BrokenHost())
        approval = gate.request(RunCommand(command="ls"))

        result = await gate.resolve(approval.id, approved=True)

        assert result.exit_code == -1
        assert "spawn failed" in result.output

    @pytest.mark.asyncio
    async def test_approved_write_uses_edited_content(self, context, host, temp_workspace):
        gate = ExecutionGate(context, host=host)
        approval = gate.request(WriteFile(path="notes.txt", content="draft"))

        result = await gate.resolve(approval.id, approved=True, content="final")

        assert isinstance(result, WriteResult)
        assert result.success is True
        assert host.writes == [("notes.txt", "final", temp_workspace.resolve())]

    @pytest.mark.asyncio
    async def test_failed_write_is_data(self, context, host):
        host.write_status = "error"
        gate = ExecutionGate(context, host=host)
        approval = gate.request(WriteFile(path="notes.txt", content="x"))

        result = await gate.resolve(approval.id, approved=True)

        assert result.success is False
        assert "Failed to write" in result.message

    @pytest.mark.asyncio
    async def test_skip_executes_nothing(self, context, host):
        gate = ExecutionGate(context, host=host)
        approval = gate.request(RunCommand(command="rm -rf /"))

        result = await gate.resolve(approval.id, approved=False)

        assert isinstance(result, Skipped)
        assert result.action == RunCommand(command="rm -rf /")
        assert host.commands == []

    @pytest.mark.asyncio
    async def test_resolves_at_most_once(self, context, host):
        gate = ExecutionGate(context, host=host)
        approval = gate.request(RunCommand(command="ls"))
        await gate.resolve(approval.id, approved=True)

        with pytest.raises(ApprovalNotFoundError):
            await gate.resolve(approval.id, approved=True)
        with pytest.raises(ApprovalNotFoundError):
            await gate.resolve("unknown", approved=False)

        assert len(host.commands) == 1
