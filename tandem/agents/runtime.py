"""
Orchestration Loop for Tandem.

Turns free-form model output into approved, locally-consequential actions
and feeds results back to the model until the task is done or the user
stops approving.

State machine (one per session):

    Idle --send--> Planning --response--> Idle | AwaitingApproval
    AwaitingApproval --approve run--> Executing --chains--> Analyzing --> (response handling)
    AwaitingApproval --approve write--> Executing --> Idle | AwaitingApproval
    AwaitingApproval --skip--> Idle | AwaitingApproval

Rules:
- One cycle in flight per session (SessionContext.cycle_in_flight); sends and
  approvals arriving meanwhile are rejected with an error event, not queued.
- Read blocks never need approval; run and write blocks always do.
- Only the first gated action of a response chains into Analyzing, and only
  when it is a run block.
- Gateway failures end the cycle with an error event; nothing is retried.
- Declining a pending approval is the only way to stop a chain. An in-flight
  gateway call cannot be cancelled.

Usage:
    loop = OrchestrationLoop(context, channel)
    await loop.send("run the tests")
    approval = loop.pending()[0]
    await loop.resolve(approval.id, approved=True)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from tandem.agents.adapter import ModelGatewayAdapter
from tandem.agents.enrichment import enrich_message
from tandem.agents.gate import ApprovalNotFoundError, ExecutionGate
from tandem.agents.history import ConversationHistory
from tandem.agents.parser import parse
from tandem.agents.state import (
    CommandResult,
    Message,
    LoopState,
    ParsedAction,
    PendingApproval,
    ReadFile,
    RunCommand,
    Skipped,
    Text,
    WriteFile,
    WriteResult,
)
from tandem.core.events import EventChannel
from tandem.core.gateway import GatewayError
from tandem.core.prompts import (
    COMMAND_RESULT_DISPLAY,
    COMMAND_RESULT_PROMPT,
    NO_OUTPUT,
    READ_RESULT_DISPLAY,
    READ_RESULT_TURN,
    TIMEOUT_NOTE,
    WRITE_CONFIRMATION,
    build_code_action_prompt,
)
from tandem.core.session import SessionContext
from tandem.core.settings import get_settings_manager
from tandem.core.workspace import WorkspaceInspector, inspector_for
from tandem.tools.host import LocalHost

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Still working on the previous request. Please wait for it to finish."
NOT_PENDING_MESSAGE = "That action is no longer pending."


# ============================================================================
# LIMITS
# ============================================================================

@dataclass
class LoopLimits:
    """Bounds applied by the loop (defaults mirror the settings defaults)."""

    history_limit: int = 50
    context_turns: int = 10
    analysis_turns: int = 8
    context_chars: int = 1000
    read_chars: int = 3000
    output_chars: int = 5000
    command_timeout: int = 120
    max_buffer_bytes: int = 5 * 1024 * 1024

    @classmethod
    def from_settings(cls) -> "LoopLimits":
        limits = get_settings_manager().load_settings()["limits"]
        return cls(**{
            key: limits[key] for key in cls.__dataclass_fields__ if key in limits
        })


# ============================================================================
# ORCHESTRATION LOOP
# ============================================================================

class OrchestrationLoop:
    """
    Drives planning, approval and execution for one session.

    All outbound communication goes through the session's EventChannel.
    """

    def __init__(
        self,
        context: SessionContext,
        channel: EventChannel,
        *,
        adapter: Optional[ModelGatewayAdapter] = None,
        host: Optional[Any] = None,
        history: Optional[ConversationHistory] = None,
        limits: Optional[LoopLimits] = None,
        inspector_factory: Callable[..., WorkspaceInspector] = inspector_for
    ):
        self.context = context
        self.channel = channel
        self.limits = limits or LoopLimits.from_settings()
        self.adapter = adapter or ModelGatewayAdapter()
        self.host = host or LocalHost()
        self.history = history or ConversationHistory(limit=self.limits.history_limit)
        self.gate = ExecutionGate(
            context,
            host=self.host,
            timeout=self.limits.command_timeout,
            max_buffer=self.limits.max_buffer_bytes,
            output_chars=self.limits.output_chars,
        )
        self.inspector_factory = inspector_factory
        self.state = LoopState.IDLE

    # ========================================================================
    # INTROSPECTION
    # ========================================================================

    def pending(self) -> List[PendingApproval]:
        return self.gate.pending()

    def transcript(self) -> List[Dict[str, str]]:
        return self.history.to_transcript()

    def inspector(self) -> WorkspaceInspector:
        return self.inspector_factory(self.context.workspace_root, self.context.active_file)

    # ========================================================================
    # USER INPUT
    # ========================================================================

    async def send(self, text: str) -> bool:
        """
        Start an orchestration cycle for a user message.

        Args:
            text: The user's message.

        Returns:
            False if rejected because a cycle is in flight, True otherwise
            (including cycles that ended in a gateway error).
        """
        if not text or not text.strip():
            return False

        if self.context.cycle_in_flight:
            logger.warning(f"[{self.context.session_id}] send rejected: cycle in flight")
            await self.channel.emit_error(BUSY_MESSAGE)
            return False

        try:
            async with self.context.cycle():
                await self._plan(text)
            return True
        finally:
            await self._settle()

    async def _plan(self, text: str) -> None:
        await self._set_state(LoopState.PLANNING)
        await self.channel.emit_thinking("Reading workspace...")

        window = self.history.recent(
            self.limits.context_turns, max_chars=self.limits.context_chars
        )
        self.history.add("user", text)

        inspector = self.inspector()
        snapshot = self.context.workspace_snapshot(inspector)
        enrichment = enrich_message(text, inspector)
        if enrichment.kind == "file":
            await self.channel.emit_status(f"Reading {enrichment.source}...")
        elif enrichment.kind == "review":
            await self.channel.emit_status("Reading source files...")

        await self.channel.emit_status("Asking AI...")
        messages = [turn.message for turn in window]
        messages.append(Message(role="user", text=enrichment.message))

        try:
            reply = await self.adapter.complete(
                self.adapter.build_system_prompt(snapshot),
                messages,
                self.context,
            )
        except GatewayError as e:
            await self._report_gateway_error(e)
            return

        await self._handle_response(reply)

    async def code_action(self, action: str, code: str, language: str) -> bool:
        """Send an editor code action (explain, refactor, test, fix, docs)."""
        return await self.send(build_code_action_prompt(action, code, language))

    def clear_history(self) -> None:
        """Forget the conversation. Pending approvals stay resolvable."""
        self.history.clear()

    # ========================================================================
    # APPROVALS
    # ========================================================================

    async def resolve(
        self,
        approval_id: str,
        approved: bool,
        content: Optional[str] = None
    ) -> Optional[Union[CommandResult, WriteResult, Skipped]]:
        """
        Approve or skip a pending action.

        Args:
            approval_id: Id of the PendingApproval.
            approved: True to execute, False to skip.
            content: Edited content for a write block (optional).

        Returns:
            The gate's result, or None if the approval was unknown or the
            approval was rejected because a cycle is in flight.
        """
        approval = self.gate.get(approval_id)
        if approval is None:
            await self.channel.emit_error(NOT_PENDING_MESSAGE)
            return None

        if not approved:
            result = await self.gate.resolve(approval_id, approved=False)
            await self.channel.emit_status(f"Skipped: {_describe(approval)}")
            # A running cycle settles the state itself when it ends
            if not self.context.cycle_in_flight:
                await self._settle()
            return result

        if self.context.cycle_in_flight:
            logger.warning(f"[{self.context.session_id}] approval rejected: cycle in flight")
            await self.channel.emit_error(BUSY_MESSAGE)
            return None

        try:
            async with self.context.cycle():
                return await self._execute(approval, content)
        finally:
            await self._settle()

    async def _execute(
        self,
        approval: PendingApproval,
        content: Optional[str]
    ) -> Optional[Union[CommandResult, WriteResult]]:
        await self._set_state(LoopState.EXECUTING)

        if isinstance(approval.action, RunCommand):
            await self.channel.emit_thinking(f"Running: {approval.action.command}")

        try:
            result = await self.gate.resolve(approval.id, approved=True, content=content)
        except ApprovalNotFoundError:
            await self.channel.emit_error(NOT_PENDING_MESSAGE)
            return None

        self.context.invalidate_snapshot()

        if isinstance(result, WriteResult):
            await self._report_write(result)
        else:
            await self._report_command(result)
            if approval.chains:
                await self._analyze(result)

        return result

    async def resolve_run_by_command(
        self,
        command: str,
        approval_id: Optional[str] = None
    ) -> Optional[Union[CommandResult, Skipped]]:
        """Approve the pending run block for ``command`` (``approve_run``)."""
        approval = self.gate.get(approval_id) if approval_id else self.gate.find_run(command)
        if approval is None or not isinstance(approval.action, RunCommand):
            await self.channel.emit_error(f"No pending approval for command: {command}")
            return None
        return await self.resolve(approval.id, approved=True)

    async def resolve_write_by_path(
        self,
        path: str,
        content: Optional[str] = None,
        approval_id: Optional[str] = None
    ) -> Optional[Union[WriteResult, Skipped]]:
        """Approve the pending write block for ``path`` (``approve_write``)."""
        approval = self.gate.get(approval_id) if approval_id else self.gate.find_write(path)
        if approval is None or not isinstance(approval.action, WriteFile):
            await self.channel.emit_error(f"No pending approval for file: {path}")
            return None
        return await self.resolve(approval.id, approved=True, content=content)

    # ========================================================================
    # RESPONSE HANDLING
    # ========================================================================

    async def _handle_response(self, reply: str) -> None:
        """Surface text, fold in reads, register approvals for a model reply."""
        actions: List[ParsedAction] = parse(reply)
        first_gated = True

        for action in actions:
            if isinstance(action, Text):
                self.history.add("assistant", action.content)
                await self.channel.emit_response(action.content)

            elif isinstance(action, ReadFile):
                await self._read(action)

            elif isinstance(action, (RunCommand, WriteFile)):
                chains = first_gated and isinstance(action, RunCommand)
                first_gated = False
                approval = self.gate.request(action, chains=chains)
                await self._surface_approval(approval)

        logger.info(
            f"[{self.context.session_id}] handled reply: {len(actions)} actions, "
            f"{len(self.gate)} pending approvals"
        )

    async def _read(self, action: ReadFile) -> None:
        await self.channel.emit_status(f"Reading {action.path}...")
        content = self.host.read_file(
            action.path, self.context.workspace_root, max_chars=self.limits.read_chars
        )
        self.history.add("assistant", READ_RESULT_TURN.format(path=action.path, content=content))
        await self.channel.emit_response(
            READ_RESULT_DISPLAY.format(path=action.path, content=content)
        )

    async def _surface_approval(self, approval: PendingApproval) -> None:
        await self.channel.emit_action(approval.action_type, **approval.event_data())

    # ========================================================================
    # EXECUTION FEEDBACK
    # ========================================================================

    async def _report_command(self, result: CommandResult) -> None:
        display = COMMAND_RESULT_DISPLAY.format(
            command=result.command,
            exit_code=result.exit_code,
            output=result.output or NO_OUTPUT,
        )
        self.history.add("assistant", display)
        await self.channel.emit_response(display)

    async def _report_write(self, result: WriteResult) -> None:
        confirmation = WRITE_CONFIRMATION.format(message=result.message)
        if result.success:
            self.history.add("assistant", confirmation)
            await self.channel.emit_response(confirmation)
        else:
            await self.channel.emit_error(result.message)

    async def _analyze(self, result: CommandResult) -> None:
        """Feed a command result back to the model and handle its reply."""
        await self._set_state(LoopState.ANALYZING)
        await self.channel.emit_thinking("Analyzing and planning next steps...")

        follow_up = COMMAND_RESULT_PROMPT.format(
            command=result.command,
            exit_code=result.exit_code,
            timeout_note=TIMEOUT_NOTE if result.timed_out else "",
            output=result.output or NO_OUTPUT,
        )
        window = self.history.recent(
            self.limits.analysis_turns, max_chars=self.limits.context_chars
        )
        messages = [turn.message for turn in window]
        messages.append(Message(role="user", text=follow_up))

        try:
            snapshot = self.context.workspace_snapshot(self.inspector())
            reply = await self.adapter.complete(
                self.adapter.build_system_prompt(snapshot),
                messages,
                self.context,
            )
        except GatewayError as e:
            await self._report_gateway_error(e)
            return

        await self._set_state(LoopState.PLANNING)
        await self._handle_response(reply)

    # ========================================================================
    # STATE
    # ========================================================================

    async def _set_state(self, state: LoopState) -> None:
        if state != self.state:
            logger.debug(f"[{self.context.session_id}] {self.state.value} -> {state.value}")
            self.state = state
            await self.channel.emit_state(state.value)

    async def _settle(self) -> None:
        """Return to AwaitingApproval if anything is pending, else Idle."""
        await self._set_state(
            LoopState.AWAITING_APPROVAL if len(self.gate) else LoopState.IDLE
        )

    async def _report_gateway_error(self, error: GatewayError) -> None:
        logger.error(f"[{self.context.session_id}] gateway failure: {error}")
        await self.channel.emit_error(error.message or str(error))


def _describe(approval: PendingApproval) -> str:
    action = approval.action
    return action.command if isinstance(action, RunCommand) else action.path


__all__ = [
    "OrchestrationLoop",
    "LoopLimits",
    "BUSY_MESSAGE",
    "NOT_PENDING_MESSAGE",
]
