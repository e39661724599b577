"""
FastAPI REST API server for onboarding flow sessions.

Exposes the flow engine to a UI as a message-passing surface: the UI creates
a session, posts named intents, and renders the snapshots it gets back.

Usage:
    # Run standalone
    python -m onboarding.api.server

    # Or via factory
    from onboarding.api import create_app
    app = create_app()
    uvicorn.run(app, port=5002)

API Structure:
    /api/flows              - Flow definitions (from routes/flows.py)
    /api/sessions           - Flow sessions (from routes/sessions.py)
    /api/health             - Health check
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from onboarding import __version__
from onboarding.config.flow_registry import FlowRegistry
from onboarding.config.runtime_config import (
    get_adapter_mode,
    get_log_level,
    get_max_sessions,
    get_stub_accounts,
    is_stub_mode,
)
from onboarding.runtime.identity import IdentityAdapters, build_stub_adapters

from .session_store import AdapterFactory, SessionStore

# Configure logging
logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models for Request/Response
# =============================================================================


class HealthResponse(BaseModel):
    """Response for health endpoint."""

    status: str
    timestamp: str
    version: str
    adapter_mode: str
    flows: int
    sessions: Dict[str, int]


# =============================================================================
# Application Factory
# =============================================================================


def _adapter_factory(adapters: Optional[IdentityAdapters]) -> AdapterFactory:
    """Choose where each new session gets its adapters from.

    Explicit adapters are shared by every session. In stub mode each session
    gets its own freshly seeded stubs.
    """
    if adapters is not None:
        logger.info("Sessions share adapters %s", adapters.describe())
        return lambda: adapters
    if is_stub_mode():
        accounts = get_stub_accounts()
        return lambda: build_stub_adapters(accounts)
    raise RuntimeError(
        f"Adapter mode '{get_adapter_mode()}' needs adapters passed to create_app()"
    )


def create_app(
    adapters: Optional[IdentityAdapters] = None,
    enable_cors: bool = True,
    max_sessions: Optional[int] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        adapters: Identity adapters shared by all sessions. When omitted,
            stub mode builds seeded stub adapters per session.
        enable_cors: Whether to enable CORS middleware.
        max_sessions: Session store cap; defaults to runtime config.

    Returns:
        Configured FastAPI application.
    """
    # Load and validate flow definitions up front
    registry = FlowRegistry.get_instance()

    app = FastAPI(
        title="Onboarding Flow API",
        description="Drives signup, legacy-account migration and public-key login flows.",
        version=__version__,
    )
    app.state.sessions = SessionStore(_adapter_factory(adapters), max_sessions or get_max_sessions())

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    # -------------------------------------------------------------------------
    # Include Modular Routers
    # -------------------------------------------------------------------------
    from .routes import flows_router, sessions_router

    app.include_router(flows_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")

    # -------------------------------------------------------------------------
    # Request Logging Middleware
    # -------------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "%s %s %s %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=__version__,
            adapter_mode="custom" if adapters is not None else get_adapter_mode(),
            flows=len(registry.flows),
            sessions=request.app.state.sessions.stats(),
        )

    logger.info("Onboarding API ready with %d flows", len(registry.flows))
    return app


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the API server."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Onboarding Flow API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5002, help="Port to bind to")
    parser.add_argument("--no-cors", action="store_true", help="Disable CORS")
    args = parser.parse_args()

    app = create_app(enable_cors=not args.no_cors)
    logger.info("Starting Onboarding Flow API on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
