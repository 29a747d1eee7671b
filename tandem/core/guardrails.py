"""
Output Guardrails for Tandem.

Enforces the size bounds that keep model requests and surface messages small:
- Command output cap (combined stdout/stderr)
- File read cap (content folded back into history)
- Per-turn context cap (context window sent to the Model Gateway)
- Binary file detection for the file host

Tandem does not sandbox commands beyond the terminal timeout and buffer cap;
these helpers only bound text.
"""

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

# Combined command output returned by the Execution Gate (characters)
COMMAND_OUTPUT_MAX_CHARS = 5_000

# File content folded back into history after a read block (characters)
READ_OUTPUT_MAX_CHARS = 3_000

# Per-turn text sent in a Model Gateway context window (characters)
CONTEXT_TURN_MAX_CHARS = 1_000

# Raw subprocess output accepted from the host before it is cut (bytes)
MAX_BUFFER_BYTES = 5 * 1024 * 1024

TRUNCATION_MARKER = "[output truncated]"


# ============================================================================
# TRUNCATION
# ============================================================================

def truncate_output(
    output: str,
    max_chars: int = COMMAND_OUTPUT_MAX_CHARS,
    truncation_message: Optional[str] = None
) -> str:
    """
    Truncate output to a character limit, appending a marker when cut.

    The first ``max_chars`` characters are always kept intact; the marker is
    appended after them on its own line.

    Args:
        output: Text to bound.
        max_chars: Maximum characters kept from ``output``.
        truncation_message: Custom marker (defaults to TRUNCATION_MARKER
            with the original length).

    Returns:
        ``output`` unchanged if within the limit, otherwise the cut text plus
        the marker.

    Example:
        >>> truncate_output("x" * 10, max_chars=4)
        'xxxx\\n... [output truncated: 10 chars, showing first 4]'
    """
    if len(output) <= max_chars:
        return output

    if truncation_message is None:
        truncation_message = (
            f"{TRUNCATION_MARKER[:-1]}: {len(output)} chars, showing first {max_chars}]"
        )

    return f"{output[:max_chars]}\n... {truncation_message}"


def clip(text: str, max_chars: int) -> str:
    """Hard cut without a marker (used for context windows and previews)."""
    return text[:max_chars]


# ============================================================================
# FILE HELPERS
# ============================================================================

def is_file_binary(file_path: Path, sample_size: int = 8192) -> bool:
    """
    Heuristic check if file is binary (non-text).

    A file is binary when its sample holds a NUL byte or is not valid UTF-8.
    Up to 3 trailing bytes are ignored so a multibyte character cut by the
    sample boundary does not count.

    Args:
        file_path: Path to file.
        sample_size: Bytes to sample for detection.

    Returns:
        True if file appears to be binary.
    """
    if not file_path.exists():
        return False

    try:
        with file_path.open("rb") as f:
            chunk = f.read(sample_size)
    except OSError:
        return True

    if b"\x00" in chunk:
        return True

    try:
        chunk.decode("utf-8", errors="strict")
    except UnicodeDecodeError as e:
        cut_at_boundary = len(chunk) == sample_size and e.start >= len(chunk) - 3
        return not cut_at_boundary
    return False


__all__ = [
    "COMMAND_OUTPUT_MAX_CHARS",
    "READ_OUTPUT_MAX_CHARS",
    "CONTEXT_TURN_MAX_CHARS",
    "MAX_BUFFER_BYTES",
    "TRUNCATION_MARKER",
    "truncate_output",
    "clip",
    "is_file_binary",
]
