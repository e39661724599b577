"""
Routes package for the onboarding API.

This package contains the FastAPI routers for:
- flows: Flow definitions (steps, titles, transitions)
- sessions: Flow sessions (create, snapshot, actions, back, reset, cancel, events)
"""

from .flows import router as flows_router
from .sessions import router as sessions_router

__all__ = [
    "flows_router",
    "sessions_router",
]
