"""
Execution Gate for Tandem.

Mandatory human-in-the-loop checkpoint for side-effecting actions:
- request(): turn a RunCommand/WriteFile into a PendingApproval
- resolve(): on approval invoke the File/Process Host, on skip do nothing

Each approval resolves exactly once. Approvals never time out; they wait
until the user decides. Host failures come back as results (exit code -1,
success=False) and are never raised past the gate.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from tandem.agents.state import (
    CommandResult,
    ExecutionResult,
    GatedAction,
    PendingApproval,
    RunCommand,
    Skipped,
    WriteFile,
    WriteResult,
)
from tandem.core.guardrails import (
    COMMAND_OUTPUT_MAX_CHARS,
    MAX_BUFFER_BYTES,
    truncate_output,
)
from tandem.core.session import SessionContext
from tandem.tools.host import LocalHost
from tandem.tools.terminal import DEFAULT_TIMEOUT, analyze_risk, combined_output

logger = logging.getLogger(__name__)


class ApprovalNotFoundError(KeyError):
    """Raised when resolving an approval that is unknown or already resolved."""
    pass


class ExecutionGate:
    """
    Pending approvals of one session and their execution.

    Example:
        >>> gate = ExecutionGate(context)
        >>> approval = gate.request(RunCommand(command="ls"))
        >>> result = await gate.resolve(approval.id, approved=True)
        >>> result.exit_code
        0
    """

    def __init__(
        self,
        context: SessionContext,
        host: Optional[Any] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_buffer: int = MAX_BUFFER_BYTES,
        output_chars: int = COMMAND_OUTPUT_MAX_CHARS
    ):
        self.context = context
        self.host = host or LocalHost()
        self.timeout = timeout
        self.max_buffer = max_buffer
        self.output_chars = output_chars
        self._pending: Dict[str, PendingApproval] = {}

    # ========================================================================
    # REQUEST
    # ========================================================================

    def request(self, action: GatedAction, chains: bool = False) -> PendingApproval:
        """
        Register a gated action as pending.

        Args:
            action: RunCommand or WriteFile.
            chains: Whether approving it should trigger re-planning.

        Raises:
            ValueError: For actions that need no approval (Text, ReadFile).
        """
        if isinstance(action, RunCommand):
            risk = analyze_risk(action.command)
            approval = PendingApproval(
                action=action,
                chains=chains,
                risk_level=risk["level"],
                risk_reason=risk["reason"],
            )
        elif isinstance(action, WriteFile):
            approval = PendingApproval(action=action, chains=False)
        else:
            raise ValueError(f"Action does not require approval: {action!r}")

        self._pending[approval.id] = approval
        logger.info(
            f"[{self.context.session_id}] approval {approval.id} pending "
            f"({approval.action_type}, chains={approval.chains})"
        )
        return approval

    # ========================================================================
    # LOOKUP
    # ========================================================================

    def pending(self) -> List[PendingApproval]:
        """Unresolved approvals, oldest first."""
        return sorted(self._pending.values(), key=lambda a: a.created_at)

    def get(self, approval_id: str) -> Optional[PendingApproval]:
        return self._pending.get(approval_id)

    def find_run(self, command: str) -> Optional[PendingApproval]:
        """Oldest pending run block with exactly this command."""
        for approval in self.pending():
            if isinstance(approval.action, RunCommand) and approval.action.command == command.strip():
                return approval
        return None

    def find_write(self, path: str) -> Optional[PendingApproval]:
        """Oldest pending write block targeting this path."""
        for approval in self.pending():
            if isinstance(approval.action, WriteFile) and approval.action.path == path.strip():
                return approval
        return None

    def clear(self) -> None:
        """Drop every pending approval without executing anything."""
        if self._pending:
            logger.info(f"[{self.context.session_id}] dropping {len(self._pending)} pending approvals")
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)

    # ========================================================================
    # RESOLVE
    # ========================================================================

    async def resolve(
        self,
        approval_id: str,
        approved: bool,
        content: Optional[str] = None
    ) -> Union[ExecutionResult, Skipped]:
        """
        Resolve a pending approval.

        Args:
            approval_id: Id of the PendingApproval.
            approved: True to execute, False to skip.
            content: Replacement content for a write block (the surface may
                send back an edited version).

        Returns:
            CommandResult, WriteResult, or Skipped.

        Raises:
            ApprovalNotFoundError: If the id is unknown or already resolved.
        """
        approval = self._pending.pop(approval_id, None)
        if approval is None:
            raise ApprovalNotFoundError(approval_id)

        if not approved:
            logger.info(f"[{self.context.session_id}] approval {approval_id} skipped")
            return Skipped(approval_id=approval_id, action=approval.action)

        if isinstance(approval.action, RunCommand):
            return await self._execute_run(approval)

        action = approval.action
        if content is not None:
            action = WriteFile(path=action.path, content=content)
        return self._execute_write(approval_id, action)

    async def _execute_run(self, approval: PendingApproval) -> CommandResult:
        command = approval.action.command
        cwd = self.context.working_directory

        try:
            raw = await asyncio.to_thread(
                self.host.run_command,
                command,
                cwd,
                timeout=self.timeout,
                max_buffer=self.max_buffer,
                session_id=self.context.session_id,
            )
        except Exception as e:
            logger.error(f"Host failed to run {command!r}: {e}", exc_info=True)
            raw = {"exit_code": -1, "stdout": "", "stderr": f"Execution error: {e}"}

        output = combined_output(raw)
        bounded = truncate_output(output, max_chars=self.output_chars)

        return CommandResult(
            approval_id=approval.id,
            command=command,
            exit_code=raw.get("exit_code", -1),
            stdout=raw.get("stdout", ""),
            stderr=raw.get("stderr", ""),
            output=bounded,
            truncated=len(output) > self.output_chars,
            timed_out=bool(raw.get("timed_out", False)),
            buffer_exceeded=bool(raw.get("buffer_exceeded", False)),
            cwd=str(cwd),
        )

    def _execute_write(self, approval_id: str, action: WriteFile) -> WriteResult:
        try:
            outcome = self.host.write_file(action.path, action.content, self.context.workspace_root)
        except Exception as e:
            logger.error(f"Host failed to write {action.path}: {e}", exc_info=True)
            outcome = {"status": "error", "summary": f"Failed to write {action.path}: {e}"}

        return WriteResult(
            approval_id=approval_id,
            path=action.path,
            success=outcome.get("status") == "success",
            message=outcome.get("summary", ""),
        )


__all__ = ["ExecutionGate", "ApprovalNotFoundError"]
