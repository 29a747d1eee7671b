"""
Pytest Configuration and Shared Fixtures for Tandem.

Provides common fixtures for:
- Temporary workspaces
- Isolated settings (per-test config directory)
- A scripted Model Gateway client
- A recording File/Process Host
- Orchestration Loops wired to the fakes above
"""

import pytest
from typing import Any, Dict, List, Optional

from tandem.agents.adapter import ModelGatewayAdapter
from tandem.agents.runtime import LoopLimits, OrchestrationLoop
from tandem.core.events import EventChannel, drain_queue
from tandem.core.processes import clear_registry
from tandem.core.session import Credential, SessionContext
from tandem.core.settings import SERVER_URL_ENV, SettingsManager
from tandem.server.session import reset_session_manager


# ============================================================================
# WORKSPACE FIXTURES
# ============================================================================

@pytest.fixture
def temp_workspace(tmp_path):
    """
    Create a temporary workspace directory with sample files.

    Returns:
        Path: Temporary workspace directory.
    """
    workspace = tmp_path / "workspace"
    workspace.mkdir()

    (workspace / "package.json").write_text(
        '{"name": "demo-app", "scripts": {"test": "jest", "build": "tsc"}, '
        '"dependencies": {"express": "^4.0.0"}}'
    )
    (workspace / "README.md").write_text("# Demo\n\nA sample project.\n")

    (workspace / "src").mkdir()
    (workspace / "src" / "app.py").write_text(
        "def greet(name):\n    return f'Hello, {name}'\n"
    )
    (workspace / "src" / "utils.js").write_text("export const add = (a, b) => a + b;\n")

    # Vendored and hidden content never shows up in listings or bundles
    (workspace / "node_modules").mkdir()
    (workspace / "node_modules" / "lib.js").write_text("module.exports = {};\n")
    (workspace / ".git").mkdir()

    return workspace


@pytest.fixture
def empty_workspace(tmp_path):
    """
    Create an empty temporary workspace directory.

    Returns:
        Path: Empty temporary workspace directory.
    """
    workspace = tmp_path / "empty_workspace"
    workspace.mkdir()
    return workspace


# ============================================================================
# SETTINGS FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """
    Point the global SettingsManager at a per-test config directory.

    Returns:
        SettingsManager: The isolated settings manager.
    """
    manager = SettingsManager(config_dir=tmp_path / "config")
    monkeypatch.setattr("tandem.core.settings._settings_manager", manager)
    monkeypatch.delenv(SERVER_URL_ENV, raising=False)
    return manager


# ============================================================================
# GATEWAY FIXTURES
# ============================================================================

class ScriptedGatewayClient:
    """
    Stand-in for GatewayClient returning scripted replies in order.

    A reply that is an Exception instance is raised instead of returned.
    Every chat call is recorded in ``calls``.
    """

    def __init__(self, replies: Optional[List[Any]] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []
        self.credential: Optional[Credential] = None
        self.sign_in_error: Optional[Exception] = None
        self.closed = False

    async def chat(self, message, system, history, token=None):
        self.calls.append({
            "message": message,
            "system": system,
            "history": history,
            "token": token,
        })
        if not self.replies:
            raise AssertionError(f"Unexpected gateway call: {message!r}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def sign_in(self, email, password):
        if self.sign_in_error is not None:
            raise self.sign_in_error
        self.credential = Credential(token=f"token-for-{email}", email=email)
        return self.credential

    async def aclose(self):
        self.closed = True


@pytest.fixture
def gateway():
    """ScriptedGatewayClient with no replies queued."""
    return ScriptedGatewayClient()


# ============================================================================
# HOST FIXTURES
# ============================================================================

class RecordingHost:
    """
    File/Process Host that records calls instead of touching the machine.

    Attributes:
        commands: (command, cwd, timeout, session_id) per run_command call.
        results: Raw run results by command (default: exit 0, no output).
        files: Read results by path (missing paths read as an error string).
        writes: (path, content, root) per write_file call.
    """

    def __init__(self):
        self.commands: List[tuple] = []
        self.results: Dict[str, Dict[str, Any]] = {}
        self.files: Dict[str, str] = {}
        self.writes: List[tuple] = []
        self.write_status = "success"

    def run_command(self, command, cwd, timeout=None, max_buffer=None, session_id=None):
        self.commands.append((command, cwd, timeout, session_id))
        result = {"exit_code": 0, "stdout": "", "stderr": "", "timed_out": False}
        result.update(self.results.get(command, {}))
        return result

    def read_file(self, path, root=None, max_chars=3000):
        return self.files.get(path, f"[Error: cannot read {path}]")[:max_chars]

    def write_file(self, path, content, root=None):
        self.writes.append((path, content, root))
        if self.write_status != "success":
            return {"path": path, "status": "error", "summary": f"Failed to write {path}"}
        return {"path": path, "status": "success", "summary": f"File written: {path}"}


@pytest.fixture
def host():
    return RecordingHost()


# ============================================================================
# LOOP FIXTURES
# ============================================================================

class LoopHarness:
    """An OrchestrationLoop plus the queue observing its channel."""

    def __init__(self, loop: OrchestrationLoop, queue):
        self.loop = loop
        self.queue = queue

    def events(self) -> list:
        """Events emitted since the last call, oldest first."""
        return drain_queue(self.queue)

    def of_type(self, events: list, type_value: str) -> list:
        return [e for e in events if e.type.value == type_value]


@pytest.fixture
def make_loop(gateway, host):
    """
    Factory building an OrchestrationLoop wired to the scripted gateway and
    the recording host.

    Usage:
        harness = make_loop(["reply"], workspace=temp_workspace)
    """
    def _make(replies=None, workspace=None, loop_host=None, limits=None, token=None):
        gateway.replies.extend(replies or [])
        context = SessionContext.create(
            workspace_root=str(workspace) if workspace else None,
            identity=Credential(token=token, email="dev@example.com") if token else None,
        )
        channel = EventChannel(name="test")
        queue = channel.subscribe()
        loop = OrchestrationLoop(
            context,
            channel,
            adapter=ModelGatewayAdapter(gateway),
            host=loop_host or host,
            limits=limits or LoopLimits(),
        )
        return LoopHarness(loop, queue)

    return _make


# ============================================================================
# CLEANUP FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def clean_globals():
    """Reset the process registry and the session manager around each test."""
    clear_registry()
    reset_session_manager()
    yield
    clear_registry()
    reset_session_manager()


@pytest.fixture
def loop_factory(gateway, host):
    """SessionManager loop factory wired to the scripted gateway and recording host."""
    def _factory(context, channel):
        return OrchestrationLoop(
            context,
            channel,
            adapter=ModelGatewayAdapter(gateway),
            host=host,
            limits=LoopLimits(),
        )

    return _factory
