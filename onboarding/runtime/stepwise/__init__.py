"""
onboarding.runtime.stepwise - Flow orchestration core.

Package Structure:
    orchestrator.py   - FlowOrchestrator (invoke / go_back / reset / cancel)
    action_tracker.py - ActionTracker, per-action pending/error state
    history.py        - NavigationHistory, back-navigation stack
    transitions.py    - TransitionTable, (step, action, outcome) -> step
    session.py        - FlowSession, the state one orchestrator owns
    models.py         - ActionResult, HistoryEntry, SessionSnapshot

Usage:
    from onboarding.runtime.stepwise import ActionResult, FlowOrchestrator

    orchestrator = FlowOrchestrator(FlowKind.SIGNUP, handlers, on_complete=done)
    await orchestrator.invoke(SignupAction.SET_USER_TYPE, is_artist=True)
"""

# =============================================================================
# Public API: Orchestrator
# =============================================================================
from .orchestrator import (
    ACTION_UNAVAILABLE,
    FlowOrchestrator,
    Handler,
    Listener,
    resolved_public_key,
)

# =============================================================================
# Public API: Building blocks
# =============================================================================
from .action_tracker import ActionTracker, action_key
from .history import NavigationHistory
from .models import ActionResult, HistoryEntry, SessionSnapshot, snapshot_to_dict
from .session import FlowSession
from .transitions import TransitionTable

__all__ = [
    "ACTION_UNAVAILABLE",
    "FlowOrchestrator",
    "Handler",
    "Listener",
    "resolved_public_key",
    "ActionTracker",
    "action_key",
    "NavigationHistory",
    "ActionResult",
    "HistoryEntry",
    "SessionSnapshot",
    "snapshot_to_dict",
    "FlowSession",
    "TransitionTable",
]
