"""
Local File/Process Host for Tandem.

Groups the host primitives behind one object so the Execution Gate and the
Orchestration Loop can be given a different host (tests use a recording one).
"""

from pathlib import Path
from typing import Any, Dict, Optional

from tandem.core.guardrails import MAX_BUFFER_BYTES, READ_OUTPUT_MAX_CHARS
from tandem.tools.file_ops import read_workspace_file, write_workspace_file
from tandem.tools.terminal import DEFAULT_TIMEOUT, run_command


class LocalHost:
    """Runs commands and touches files on this machine."""

    def run_command(
        self,
        command: str,
        cwd: Path,
        timeout: float = DEFAULT_TIMEOUT,
        max_buffer: int = MAX_BUFFER_BYTES,
        session_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return run_command(
            command, cwd, timeout=timeout, max_buffer=max_buffer, session_id=session_id
        )

    def read_file(
        self,
        path: str,
        root: Optional[Path] = None,
        max_chars: int = READ_OUTPUT_MAX_CHARS
    ) -> str:
        return read_workspace_file(path, root, max_chars=max_chars)

    def write_file(self, path: str, content: str, root: Optional[Path] = None) -> Dict[str, Any]:
        return write_workspace_file(path, content, root)


__all__ = ["LocalHost"]
