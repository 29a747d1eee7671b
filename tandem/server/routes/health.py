"""
Health Check Endpoints for Tandem Server.

Endpoints:
- GET /api/health - Basic health check
- GET /api/status - Sessions, attached surfaces, running commands, uptime
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from tandem import __version__
from tandem.core.processes import list_processes
from tandem.core.settings import get_settings_manager
from tandem.server.session import get_session_manager

router = APIRouter()


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    timestamp: str
    version: str


class StatusResponse(BaseModel):
    """Response model for /status endpoint with more details."""

    status: str
    timestamp: str
    version: str
    gateway_url: str
    active_sessions: int
    active_connections: int
    running_commands: int
    uptime_seconds: Optional[float] = None


# ============================================================================
# SERVER STATE
# ============================================================================

_server_start_time: Optional[datetime] = None


def set_server_start_time() -> None:
    """Set the server start time (called on startup)."""
    global _server_start_time
    _server_start_time = datetime.now()


def get_uptime_seconds() -> Optional[float]:
    if _server_start_time is None:
        return None
    return (datetime.now() - _server_start_time).total_seconds()


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Example:
        GET /api/health
        {"status": "healthy", "timestamp": "...", "version": "0.1.0"}
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=__version__
    )


@router.get("/status", response_model=StatusResponse)
async def server_status() -> StatusResponse:
    """Detailed server status endpoint."""
    session_manager = get_session_manager()

    return StatusResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=__version__,
        gateway_url=get_settings_manager().get_server_url(),
        active_sessions=await session_manager.get_session_count(),
        active_connections=await session_manager.get_connection_count(),
        running_commands=len(list_processes()),
        uptime_seconds=get_uptime_seconds()
    )


__all__ = ["router", "set_server_start_time"]
