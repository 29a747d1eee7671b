"""
File/Process Host for Tandem.

- file_ops: read blocks and approved write blocks
- terminal: approved run blocks (timeout, buffer cap, process registry)
- host: LocalHost bundling both for the gate and the loop

The Execution Gate is the only caller of the side-effecting operations.
"""

from tandem.tools.file_ops import read_workspace_file, write_workspace_file
from tandem.tools.terminal import analyze_risk, run_command, combined_output
from tandem.tools.host import LocalHost

__all__ = [
    "read_workspace_file",
    "write_workspace_file",
    "analyze_risk",
    "run_command",
    "combined_output",
    "LocalHost",
]
