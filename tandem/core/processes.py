"""
Process Registry for Tandem.

Tracks every subprocess spawned by approved run blocks so none outlives the
server or the session that started it.

Architecture:
- Module-level registry of live processes (PID + Popen handle + metadata)
- register_process() called by the terminal host right after spawning
- unregister_process() called once the command finished or was killed
- cleanup_processes() called on session destroy and server shutdown:
  graceful terminate, then force kill
"""

import subprocess
import time
import logging
from typing import Dict, List, Optional, Any
from pathlib import Path

logger = logging.getLogger(__name__)


# ============================================================================
# MODULE-LEVEL PROCESS REGISTRY
# ============================================================================

_active_processes: Dict[int, Dict[str, Any]] = {}
"""
Registry of live subprocesses.

Structure:
{
    pid: {
        "proc": subprocess.Popen,
        "command": str,
        "start_time": float (time.time()),
        "cwd": str | None,
        "session_id": str | None,
    }
}
"""


# ============================================================================
# REGISTRATION
# ============================================================================

def register_process(
    proc: subprocess.Popen,
    command: str,
    cwd: Optional[Path] = None,
    session_id: Optional[str] = None
) -> None:
    """
    Register a subprocess in the registry.

    Args:
        proc: subprocess.Popen instance
        command: Command string that was executed
        cwd: Working directory of the command (optional)
        session_id: Session that approved the command (optional)
    """
    if proc.pid is None:
        logger.warning(f"Cannot register process without PID: {command}")
        return

    _active_processes[proc.pid] = {
        "proc": proc,
        "command": command,
        "start_time": time.time(),
        "cwd": str(cwd) if cwd else None,
        "session_id": session_id,
    }

    logger.info(f"Registered process PID={proc.pid}: {command}")


def unregister_process(pid: int) -> None:
    """
    Unregister a process from the registry.

    Args:
        pid: Process ID to unregister
    """
    data = _active_processes.pop(pid, None)
    if data is not None:
        logger.info(f"Unregistered process PID={pid}: {data['command']}")
    else:
        logger.debug(f"Process PID={pid} not in registry (already cleaned up?)")


# ============================================================================
# INTROSPECTION
# ============================================================================

def list_processes(session_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List active processes in the registry.

    Args:
        session_id: Only list processes started by this session.

    Returns:
        List of process metadata dicts (without Popen handle).
    """
    processes = []
    for pid, data in _active_processes.items():
        if session_id is not None and data["session_id"] != session_id:
            continue
        processes.append({
            "pid": pid,
            "command": data["command"],
            "start_time": data["start_time"],
            "cwd": data["cwd"],
            "session_id": data["session_id"],
            "running": data["proc"].poll() is None,
        })

    return processes


# ============================================================================
# CLEANUP
# ============================================================================

def cleanup_processes(
    session_id: Optional[str] = None,
    timeout_terminate: float = 2.0,
    timeout_kill: float = 1.0
) -> Dict[str, Any]:
    """
    Terminate tracked subprocesses.

    Strategy:
    1. Graceful terminate, wait up to timeout_terminate seconds
    2. Force kill if still alive, wait up to timeout_kill seconds
    3. Unregister regardless of outcome

    Args:
        session_id: Only clean up processes of this session (None = all).
        timeout_terminate: Seconds to wait for graceful termination.
        timeout_kill: Seconds to wait after force kill.

    Returns:
        Report dict: {"total", "killed", "failed", "already_stopped"}.
    """
    pids = [
        pid for pid, data in _active_processes.items()
        if session_id is None or data["session_id"] == session_id
    ]

    report: Dict[str, Any] = {
        "total": len(pids),
        "killed": 0,
        "failed": [],
        "already_stopped": 0,
    }
    logger.info(f"Starting process cleanup: {len(pids)} processes")

    for pid in pids:
        data = _active_processes[pid]
        proc = data["proc"]
        command = data["command"]

        try:
            if proc.poll() is not None:
                report["already_stopped"] += 1
                continue

            proc.terminate()
            try:
                proc.wait(timeout=timeout_terminate)
                report["killed"] += 1
                continue
            except subprocess.TimeoutExpired:
                logger.warning(f"Process PID={pid} did not terminate gracefully, force killing")

            proc.kill()
            try:
                proc.wait(timeout=timeout_kill)
                report["killed"] += 1
            except subprocess.TimeoutExpired:
                logger.error(f"Process PID={pid} could not be killed")
                report["failed"].append({
                    "pid": pid,
                    "command": command,
                    "reason": "Timeout after force kill",
                })

        except OSError as e:
            logger.error(f"Error cleaning up process PID={pid}: {e}", exc_info=True)
            report["failed"].append({"pid": pid, "command": command, "reason": str(e)})

        finally:
            unregister_process(pid)

    logger.info(f"Process cleanup complete: {report}")
    return report


def clear_registry() -> None:
    """Drop all registry entries without touching the processes (tests)."""
    _active_processes.clear()


__all__ = [
    "register_process",
    "unregister_process",
    "list_processes",
    "cleanup_processes",
    "clear_registry",
]
