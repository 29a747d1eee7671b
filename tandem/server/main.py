"""
Tandem Server Entry Point.

FastAPI application exposing the orchestration core to Presentation Surfaces
(editor extensions, web clients) over a WebSocket.

Usage:
    # Run the server
    python -m tandem.server.main

    # Or with custom host/port
    python -m tandem.server.main --host 0.0.0.0 --port 8080

    # For development with auto-reload
    uvicorn tandem.server.main:app --reload --host 127.0.0.1 --port 8765
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tandem import __version__
from tandem.core.processes import cleanup_processes
from tandem.core.settings import get_settings_manager
from tandem.server.routes.websocket import router as ws_router
from tandem.server.routes.health import router as health_router, set_server_start_time
from tandem.server.session import get_session_manager

logger = logging.getLogger(__name__)


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown.

    Startup prunes expired transcripts and starts the idle-session reaper.
    Shutdown destroys every session and kills any command still running.
    """
    logger.info("=" * 60)
    logger.info("Tandem Server starting...")
    logger.info("=" * 60)

    set_server_start_time()
    session_manager = get_session_manager()
    logger.info(f"Model Gateway: {get_settings_manager().get_server_url()}")

    session_manager.prune_transcripts()
    reaper = asyncio.create_task(session_manager.run_reaper())

    logger.info("Tandem Server started successfully")
    logger.info("-" * 60)

    yield

    logger.info("-" * 60)
    logger.info("Tandem Server shutting down...")

    reaper.cancel()
    try:
        await reaper
    except asyncio.CancelledError:
        pass

    try:
        count = await session_manager.destroy_all()
        logger.info(f"Destroyed {count} sessions")
    except Exception as e:
        logger.error(f"Error destroying sessions: {e}", exc_info=True)

    report = cleanup_processes()
    if report["failed"]:
        logger.error(f"Processes that could not be killed: {report['failed']}")

    logger.info("Tandem Server shutdown complete")
    logger.info("=" * 60)


# ============================================================================
# CREATE APPLICATION
# ============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance.
    """
    app = FastAPI(
        title="Tandem Server",
        description="Agentic orchestration core: approved commands, reads and "
                    "writes driven by a Model Gateway.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Editor webviews connect from their own origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(ws_router, tags=["websocket"])

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with server info."""
        return {
            "name": "Tandem Server",
            "version": __version__,
            "status": "running",
            "websocket_url": "/ws",
            "docs_url": "/docs",
        }

    return app


app = create_app()


# ============================================================================
# SERVER RUNNER
# ============================================================================

def run_server(
    host: str = "127.0.0.1",
    port: int = 8765,
    reload: bool = False,
    log_level: str = "info"
) -> None:
    """
    Run the Tandem server with uvicorn.

    Args:
        host: Host address to bind to (default: 127.0.0.1).
        port: Port number to listen on (default: 8765).
        reload: Enable auto-reload for development (default: False).
        log_level: Logging level (default: info).
    """
    configure_logging(log_level)
    logger.info(f"Starting server on {host}:{port}")
    uvicorn.run(
        "tandem.server.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        access_log=True,
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Tandem WebSocket Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host address to bind to"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8765,
        help="Port number to listen on"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Logging level"
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    """Console entry point (``tandem-server``)."""
    args = parse_args(argv)
    run_server(
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level
    )


if __name__ == "__main__":
    main()
