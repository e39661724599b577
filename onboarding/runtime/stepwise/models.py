"""
models.py - Core model dataclasses for flow orchestration.

Types:
    ActionResult: What an action handler returns (branch outcome + facts).
    HistoryEntry: One prior (step, data) state on the back-navigation stack.
    SessionSnapshot: Immutable view of a session emitted to observers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from onboarding.runtime.types import (
    ActionState,
    FlowResult,
    Outcome,
    SessionData,
    SessionId,
    SessionStatus,
    action_state_to_dict,
    flow_result_to_dict,
    session_data_to_dict,
)

__all__ = [
    "ActionResult",
    "HistoryEntry",
    "SessionSnapshot",
    "snapshot_to_dict",
]


@dataclass(frozen=True)
class ActionResult:
    """Result of a successful action handler.

    Attributes:
        outcome: Branch key looked up in the transition table.
        facts: SessionData fields to merge (see SessionData.merge).
    """

    outcome: Outcome = Outcome.SUCCESS
    facts: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, **facts: Any) -> "ActionResult":
        return cls(Outcome.SUCCESS, facts)

    @classmethod
    def branch(cls, outcome: Outcome, **facts: Any) -> "ActionResult":
        return cls(outcome, facts)


@dataclass(frozen=True)
class HistoryEntry:
    """A prior state: the step that was current and the data at that time."""

    step: str
    data: SessionData


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time view of a flow session.

    Attributes:
        session_id: Session identifier.
        flow_kind: Flow kind value.
        step: Current step id.
        title: Current step title.
        description: Current step description.
        actions_available: Actions offered by the current step.
        can_go_back: Whether go_back() would do anything.
        history_depth: Number of prior states on the stack.
        status: Session lifecycle status.
        actions: Per-action state for every action referenced so far.
        data: Session data (serialized without private material).
        result: Completion result, once the session has ended.
        detour_session_id: Nested session id while a detour is running.
    """

    session_id: SessionId
    flow_kind: str
    step: str
    title: str
    description: str
    actions_available: tuple
    can_go_back: bool
    history_depth: int
    status: SessionStatus
    actions: Dict[str, ActionState]
    data: SessionData
    result: Optional[FlowResult] = None
    detour_session_id: Optional[SessionId] = None


def snapshot_to_dict(snapshot: SessionSnapshot) -> Dict[str, Any]:
    """Convert a snapshot to a JSON-serializable dict."""
    return {
        "session_id": snapshot.session_id,
        "flow_kind": snapshot.flow_kind,
        "step": snapshot.step,
        "title": snapshot.title,
        "description": snapshot.description,
        "actions_available": list(snapshot.actions_available),
        "can_go_back": snapshot.can_go_back,
        "history_depth": snapshot.history_depth,
        "status": snapshot.status.value,
        "actions": {name: action_state_to_dict(state) for name, state in snapshot.actions.items()},
        "data": session_data_to_dict(snapshot.data),
        "result": flow_result_to_dict(snapshot.result),
        "detour_session_id": snapshot.detour_session_id,
    }
