"""
File Host Operations for Tandem.

Read and write primitives used by the Orchestration Loop (read blocks) and
the Execution Gate (approved write blocks). Wraps FileManager and the output
guardrails.

Both functions report failures as data; neither raises to the caller.
No sandboxing is applied: relative paths resolve against the workspace root,
absolute paths are used as given.
"""

from pathlib import Path
from typing import Dict, Any, Optional
import logging

from tandem.core.file_manager import FileManager
from tandem.core.guardrails import (
    READ_OUTPUT_MAX_CHARS,
    truncate_output,
    is_file_binary,
)

logger = logging.getLogger(__name__)


def read_error(path: str) -> str:
    return f"[Error: cannot read {path}]"


# ============================================================================
# READ
# ============================================================================

def read_workspace_file(
    path: str,
    root: Optional[Path] = None,
    max_chars: int = READ_OUTPUT_MAX_CHARS
) -> str:
    """
    Read a file for a read block.

    Args:
        path: File path (relative to root or absolute).
        root: Workspace root (None = process current directory).
        max_chars: Content cap; longer files are truncated with a marker.

    Returns:
        The (bounded) file content, or "[Error: cannot read <path>]".

    Example:
        >>> read_workspace_file("package.json", Path("/work/app"))
        '{\\n  "name": "app", ...'
    """
    try:
        file_manager = FileManager(root)
        resolved_path = file_manager.resolve(path)

        if is_file_binary(resolved_path):
            logger.warning(f"Refusing to read binary file: {resolved_path}")
            return read_error(path)

        content = file_manager.read_file(resolved_path)

    except (OSError, ValueError) as e:
        logger.warning(f"Read failed for {path}: {e}")
        return read_error(path)

    logger.info(f"Read {len(content)} characters from {resolved_path}")
    return truncate_output(content, max_chars=max_chars)


# ============================================================================
# WRITE
# ============================================================================

def write_workspace_file(
    path: str,
    content: str,
    root: Optional[Path] = None
) -> Dict[str, Any]:
    """
    Write an approved write block.

    Parent directories are created and existing files overwritten.

    Args:
        path: File path (relative to root or absolute).
        content: Text content to persist, verbatim.
        root: Workspace root (None = process current directory).

    Returns:
        Dict with keys:
            - path: str (resolved path, or the given path on failure)
            - status: "success" | "error"
            - summary: str (human-readable result)
            - error: Optional[str] (exception type name on failure)
    """
    try:
        file_manager = FileManager(root)
        written = file_manager.write_file(path, content)

    except (OSError, ValueError) as e:
        logger.error(f"Write failed for {path}: {e}", exc_info=True)
        return {
            "path": str(path),
            "status": "error",
            "summary": f"Failed to write {path}: {e}",
            "error": type(e).__name__,
        }

    logger.info(f"Wrote {len(content)} characters to {written}")
    return {
        "path": str(written),
        "status": "success",
        "summary": f"File written: {path}",
    }


__all__ = ["read_workspace_file", "write_workspace_file", "read_error"]
