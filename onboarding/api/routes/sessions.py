"""
Flow session endpoints.

The UI drives a session by posting named intents and renders the snapshot
that comes back; it never computes the next step itself.

Provides REST endpoints for:
- Creating, listing and deleting sessions (POST/GET /api/sessions, DELETE /api/sessions/{id})
- Reading a session snapshot (GET /api/sessions/{id})
- Invoking an action (POST /api/sessions/{id}/actions/{action})
- Back navigation, reset and cancel
- Reading the session event log (GET /api/sessions/{id}/events)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field, field_validator

from onboarding.runtime.errors import ActionPayloadError, TransitionError, UnknownActionError
from onboarding.runtime.flows import OnboardingFlow
from onboarding.runtime.stepwise import snapshot_to_dict
from onboarding.runtime.types import FlowKind, session_event_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# =============================================================================
# Pydantic Models
# =============================================================================


class SessionCreateRequest(BaseModel):
    """Request to start a flow session."""

    flow_kind: str = Field(..., description="signup, legacy-migration or direct-login")

    @field_validator("flow_kind")
    @classmethod
    def validate_flow_kind(cls, v: str) -> str:
        valid = {k.value for k in FlowKind}
        if v not in valid:
            raise ValueError(f"flow_kind must be one of {sorted(valid)}, got '{v}'")
        return v


class ActionRequest(BaseModel):
    """Payload for a named action; keys are the action's parameters."""

    payload: Dict[str, Any] = Field(default_factory=dict)


class ActionStateModel(BaseModel):
    pending: bool = False
    error: Optional[Dict[str, Any]] = None


class FlowResultModel(BaseModel):
    success: bool
    error: Optional[str] = None
    public_key: Optional[str] = None


class SessionResponse(BaseModel):
    """Snapshot of a flow session."""

    session_id: str
    flow_kind: str
    step: str
    title: str
    description: str = ""
    actions_available: List[str] = Field(default_factory=list)
    can_go_back: bool
    history_depth: int = 0
    status: str
    actions: Dict[str, ActionStateModel] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[FlowResultModel] = None
    detour_session_id: Optional[str] = None


class BackResponse(BaseModel):
    moved: bool
    session: SessionResponse


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int


class EventListResponse(BaseModel):
    session_id: str
    events: List[Dict[str, Any]]


# =============================================================================
# Helpers
# =============================================================================


def _get_flow(request: Request, session_id: str) -> OnboardingFlow:
    flow = request.app.state.sessions.get(session_id)
    if flow is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "session_not_found",
                "message": f"Session '{session_id}' not found",
                "details": {"session_id": session_id},
            },
        )
    return flow


def _session_response(flow: OnboardingFlow) -> SessionResponse:
    return SessionResponse(**snapshot_to_dict(flow.snapshot()))


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(request: Request, body: SessionCreateRequest):
    """Start a new flow session at the flow's initial step."""
    flow = request.app.state.sessions.create(body.flow_kind)
    return _session_response(flow)


@router.get("", response_model=SessionListResponse)
async def list_sessions(request: Request):
    """List top-level sessions, oldest first."""
    flows = request.app.state.sessions.list()
    return SessionListResponse(sessions=[_session_response(f) for f in flows], total=len(flows))


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(request: Request, session_id: str):
    return _session_response(_get_flow(request, session_id))


@router.delete("/{session_id}", status_code=204, response_class=Response)
async def delete_session(request: Request, session_id: str):
    """Drop a top-level session from the store."""
    if not request.app.state.sessions.remove(session_id):
        raise HTTPException(
            status_code=404,
            detail={
                "error": "session_not_found",
                "message": f"Session '{session_id}' not found",
                "details": {"session_id": session_id},
            },
        )
    return Response(status_code=204)


@router.post("/{session_id}/actions/{action}", response_model=SessionResponse)
async def invoke_action(request: Request, session_id: str, action: str, body: Optional[ActionRequest] = None):
    """Invoke a named action and return the snapshot once it has settled.

    Action failures are not HTTP errors: they show up under
    ``actions[action].error`` in the returned snapshot.
    """
    flow = _get_flow(request, session_id)
    payload = body.payload if body else {}

    try:
        await flow.invoke(action, **payload)
    except UnknownActionError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "unknown_action",
                "message": str(e),
                "details": {"action": action, "flow_kind": flow.kind.value},
            },
        )
    except ActionPayloadError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "invalid_payload",
                "message": str(e),
                "details": {"action": action},
            },
        )
    except TransitionError as e:
        logger.error("Session %s failed on %s: %s", session_id, action, e)
        raise HTTPException(
            status_code=409,
            detail={
                "error": "transition_failed",
                "message": str(e),
                "details": {"step": e.step, "action": e.action, "outcome": e.outcome},
            },
        )

    return _session_response(flow)


@router.post("/{session_id}/back", response_model=BackResponse)
async def go_back(request: Request, session_id: str):
    """Step back one state; ``moved`` is false when back navigation is refused."""
    flow = _get_flow(request, session_id)
    moved = flow.go_back()
    return BackResponse(moved=moved, session=_session_response(flow))


@router.post("/{session_id}/reset", response_model=SessionResponse)
async def reset_session(request: Request, session_id: str):
    flow = _get_flow(request, session_id)
    flow.reset()
    return _session_response(flow)


@router.post("/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(request: Request, session_id: str):
    flow = _get_flow(request, session_id)
    await flow.cancel()
    return _session_response(flow)


@router.get("/{session_id}/events", response_model=EventListResponse)
async def list_events(request: Request, session_id: str):
    flow = _get_flow(request, session_id)
    return EventListResponse(
        session_id=flow.session_id,
        events=[session_event_to_dict(event) for event in flow.events],
    )
