"""
Terminal Host for Tandem.

Executes approved run blocks:
- analyze_risk(): LOW/MEDIUM/HIGH label shown next to a pending approval
- run_command(): run a shell command with timeout and output capture

Architecture:
- Execution only happens after approval (the Execution Gate calls this)
- PID tracking: every subprocess is registered for shutdown cleanup
- Timeout enforcement with graceful terminate, then force kill
- Output drained while the command runs; a stream passing the byte buffer
  cap stops the command. Character truncation of the combined output is
  applied by the caller

The risk label is informational. Tandem does not sandbox commands.
"""

import os
import signal
import subprocess
import sys
import threading
import time
import logging
from typing import Dict, Any, Optional
from pathlib import Path

from tandem.core.guardrails import MAX_BUFFER_BYTES
from tandem.core.processes import register_process, unregister_process

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

# Default timeout for commands (2 minutes)
DEFAULT_TIMEOUT = 120  # seconds

BUFFER_EXCEEDED_NOTICE = "[output exceeded buffer limit]"

READ_CHUNK_BYTES = 64 * 1024
POLL_INTERVAL = 0.05  # seconds
READER_JOIN_TIMEOUT = 2.0  # seconds


# ============================================================================
# RISK CLASSIFICATION
# ============================================================================

def analyze_risk(command: str) -> Dict[str, str]:
    """
    Classify command risk level based on patterns.

    Args:
        command: Shell command string to analyze

    Returns:
        Dict with keys: {"level": "LOW"|"MEDIUM"|"HIGH", "reason": str}

    Examples:
        >>> analyze_risk("rm -rf build")
        {'level': 'HIGH', 'reason': 'Destructive file operation'}

        >>> analyze_risk("npm install")
        {'level': 'MEDIUM', 'reason': 'Node package installation'}

        >>> analyze_risk("git status")
        {'level': 'LOW', 'reason': 'Read-only command'}
    """
    command_lower = command.lower().strip()

    high_risk_patterns = [
        # Destructive file operations
        ("rm -rf", "Destructive file operation"),
        ("rm -r", "Recursive delete operation"),
        ("del /s", "Recursive delete (Windows)"),
        ("rmdir /s", "Recursive directory delete (Windows)"),
        ("mkfs", "Filesystem creation"),

        # Privilege escalation
        ("sudo ", "Privilege escalation"),
        ("runas ", "Run as admin (Windows)"),

        # Permission changes
        ("chmod ", "Permission modification"),
        ("chown ", "Ownership change"),

        # Disk/device writes
        ("dd ", "Direct disk write"),
        ("/dev/", "Device file access"),

        # Network fetches
        ("curl ", "Network fetch (arbitrary execution risk)"),
        ("wget ", "Network download"),

        # Destructive remote operations
        ("git push --force", "Force push to remote"),
        ("git push -f", "Force push to remote"),
        ("sf org delete", "Salesforce org deletion"),
        ("drop table", "Database table deletion"),
        ("drop database", "Database deletion"),
    ]

    for pattern, reason in high_risk_patterns:
        if pattern in command_lower:
            return {"level": "HIGH", "reason": reason}

    medium_risk_patterns = [
        # Package installs
        ("pip install", "Python package installation"),
        ("npm install", "Node package installation"),
        ("npm i ", "Node package installation"),
        ("yarn add", "Yarn package installation"),
        ("apt-get install", "System package installation"),
        ("brew install", "Homebrew package installation"),

        # File moves/renames
        ("mv ", "File move/rename"),

        # Git operations
        ("git push", "Git push to remote"),
        ("git commit", "Git commit"),
        ("git reset --hard", "Destructive git reset"),

        # Deploys and builds
        ("sf project deploy", "Salesforce deployment"),
        ("npm run build", "NPM build script"),
        ("make clean", "Build cleanup"),
    ]

    for pattern, reason in medium_risk_patterns:
        if pattern in command_lower:
            return {"level": "MEDIUM", "reason": reason}

    low_risk_prefixes = [
        "ls", "dir", "tree", "cat ", "head ", "tail ", "grep ", "find ",
        "git status", "git log", "git diff", "git show", "git branch",
        "pwd", "echo ", "which ", "node --version", "python --version",
        "npm --version", "pip list", "pip show", "npm ls", "sf org list",
    ]

    for prefix in low_risk_prefixes:
        if command_lower.startswith(prefix):
            return {"level": "LOW", "reason": "Read-only command"}

    return {"level": "MEDIUM", "reason": "Unknown command (default to MEDIUM risk)"}


# ============================================================================
# EXECUTION
# ============================================================================

def run_command(
    command: str,
    cwd: Path,
    timeout: Optional[float] = None,
    max_buffer: int = MAX_BUFFER_BYTES,
    session_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute an approved shell command with timeout and output capture.

    Blocking; callers on the event loop run it with asyncio.to_thread().

    Output is drained by reader threads while the command runs. As soon as
    either stream passes max_buffer bytes the command (and its process group
    on POSIX) is terminated, then killed, exactly like a timeout.

    Args:
        command: Shell command to execute
        cwd: Working directory (workspace root or process current directory)
        timeout: Timeout in seconds (defaults to DEFAULT_TIMEOUT)
        max_buffer: Maximum bytes kept per stream before the command is stopped
        session_id: Session that approved the command (process registry tag)

    Returns:
        Dict with keys:
        {
            "exit_code": int (-1 on timeout, buffer overflow or spawn failure),
            "stdout": str,
            "stderr": str,
            "timed_out": bool,
            "buffer_exceeded": bool,
            "pid": int,
            "command": str,
            "cwd": str,
        }

    Never raises; host-level failures are reported in the result.
    """
    if timeout is None:
        timeout = DEFAULT_TIMEOUT

    working_dir = Path(cwd).resolve()
    logger.info(f"Executing command: {command} (cwd={working_dir}, timeout={timeout}s)")

    result: Dict[str, Any] = {
        "exit_code": -1,
        "stdout": "",
        "stderr": "",
        "timed_out": False,
        "buffer_exceeded": False,
        "pid": -1,
        "command": command,
        "cwd": str(working_dir),
    }

    try:
        proc = subprocess.Popen(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(working_dir),
            creationflags=subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0,
            start_new_session=sys.platform != "win32",
        )
    except (OSError, ValueError) as e:
        logger.error(f"Failed to spawn command: {e}", exc_info=True)
        result["stderr"] = f"Execution error: {e}"
        return result

    result["pid"] = proc.pid if proc.pid else -1
    if proc.pid:
        register_process(proc, command, cwd=working_dir, session_id=session_id)

    logger.info(f"Subprocess spawned: PID={proc.pid}")

    capture = OutputCapture(max_buffer)
    readers = [
        capture.start_reader(proc.stdout, "stdout"),
        capture.start_reader(proc.stderr, "stderr"),
    ]

    try:
        stop_reason = _wait(proc, capture, timeout)

        if stop_reason is None:
            result["exit_code"] = proc.returncode
        else:
            if stop_reason == "timeout":
                logger.warning(f"Command timed out after {timeout}s: {command}")
                result["timed_out"] = True
            else:
                logger.warning(
                    f"Command output exceeded buffer ({max_buffer} bytes), "
                    f"stopping PID={proc.pid}: {command}"
                )
            _stop(proc)
            result["exit_code"] = -1

    except OSError as e:
        logger.error(f"Command execution failed: {e}", exc_info=True)
        capture.notes["stderr"] = f"Execution error: {e}"
        result["exit_code"] = -1

    finally:
        for reader in readers:
            reader.join(timeout=READER_JOIN_TIMEOUT)
        if proc.pid:
            unregister_process(proc.pid)

    if result["timed_out"]:
        capture.notes["stderr"] = f"[Timeout after {timeout}s - process killed]"

    result["stdout"] = capture.text("stdout")
    result["stderr"] = capture.text("stderr")
    result["buffer_exceeded"] = capture.exceeded.is_set()

    logger.info(
        f"Command finished: PID={proc.pid}, exit_code={result['exit_code']}, "
        f"stdout={len(result['stdout'])} chars, stderr={len(result['stderr'])} chars"
    )
    return result


def combined_output(result: Dict[str, Any]) -> str:
    """stdout followed by stderr, stripped, as shown to the model."""
    return f"{result.get('stdout', '')}{result.get('stderr', '')}".strip()


# ============================================================================
# OUTPUT CAPTURE
# ============================================================================

class OutputCapture:
    """
    Byte-counting collector for a running command's stdout and stderr.

    Each stream keeps at most max_buffer bytes. Once a stream passes the cap
    the ``exceeded`` event is set; its reader keeps draining the pipe (and
    discarding) so the child never blocks on a full pipe while being stopped.
    """

    def __init__(self, max_buffer: int):
        self.max_buffer = max_buffer
        self.exceeded = threading.Event()
        self.notes: Dict[str, str] = {}
        self._chunks: Dict[str, bytearray] = {"stdout": bytearray(), "stderr": bytearray()}
        self._overflowed: Dict[str, bool] = {"stdout": False, "stderr": False}

    def start_reader(self, stream, name: str) -> threading.Thread:
        reader = threading.Thread(
            target=self._drain,
            args=(stream, name),
            name=f"tandem-{name}-reader",
            daemon=True,
        )
        reader.start()
        return reader

    def _drain(self, stream, name: str) -> None:
        if stream is None:
            return
        kept = self._chunks[name]
        try:
            while True:
                chunk = stream.read1(READ_CHUNK_BYTES)
                if not chunk:
                    break
                room = self.max_buffer - len(kept)
                if len(chunk) > room:
                    kept.extend(chunk[:max(room, 0)])
                    if not self._overflowed[name]:
                        self._overflowed[name] = True
                        self.exceeded.set()
                else:
                    kept.extend(chunk)
        except (OSError, ValueError) as e:
            logger.debug(f"{name} reader stopped: {e}")
        finally:
            try:
                stream.close()
            except OSError as e:
                logger.debug(f"Could not close {name} pipe: {e}")

    def text(self, name: str) -> str:
        """Decoded output of one stream, with overflow and host notes appended."""
        text = bytes(self._chunks[name]).decode("utf-8", errors="replace")
        text = text.replace("\r\n", "\n")
        if self._overflowed[name]:
            text = f"{text}\n{BUFFER_EXCEEDED_NOTICE}"
        note = self.notes.get(name)
        if note:
            text = f"{text}\n{note}" if text else note
        return text


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _wait(proc: subprocess.Popen, capture: OutputCapture, timeout: float) -> Optional[str]:
    """
    Wait for the command to exit.

    Returns:
        None when it exited on its own, "timeout" or "buffer" when it has to
        be stopped.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            proc.wait(timeout=POLL_INTERVAL)
            return None
        except subprocess.TimeoutExpired:
            pass
        if capture.exceeded.is_set():
            return "buffer"
        if time.monotonic() >= deadline:
            return "timeout"


def _stop(proc: subprocess.Popen, grace: float = 2.0) -> None:
    """Graceful terminate, then force kill if the command is still alive."""
    _signal_tree(proc, force=False)
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning(f"Force killing process PID={proc.pid}")
        _signal_tree(proc, force=True)
        proc.wait()


def _signal_tree(proc: subprocess.Popen, force: bool) -> None:
    """Signal the command's process group (POSIX) or the process itself."""
    if sys.platform == "win32":
        if force:
            proc.kill()
        else:
            proc.terminate()
        return

    try:
        os.killpg(proc.pid, signal.SIGKILL if force else signal.SIGTERM)
    except ProcessLookupError:
        logger.debug(f"Process group {proc.pid} already gone")


__all__ = [
    "analyze_risk",
    "run_command",
    "combined_output",
    "OutputCapture",
    "DEFAULT_TIMEOUT",
]
