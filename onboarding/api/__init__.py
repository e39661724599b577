"""
Onboarding API - FastAPI REST API for flow sessions.

Endpoints:
    GET    /api/health                          - Health check
    GET    /api/flows                           - List flows with steps
    GET    /api/flows/{flow_kind}               - Get one flow
    POST   /api/sessions                        - Start a session
    GET    /api/sessions/{id}                   - Session snapshot
    POST   /api/sessions/{id}/actions/{action}  - Invoke an action
    POST   /api/sessions/{id}/back              - Go back one step
    POST   /api/sessions/{id}/reset             - Restart the session
    POST   /api/sessions/{id}/cancel            - Cancel the session
    GET    /api/sessions/{id}/events            - Session event log
"""

from .server import create_app
from .session_store import SessionStore

__all__ = ["create_app", "SessionStore"]
