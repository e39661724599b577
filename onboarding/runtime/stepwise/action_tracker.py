"""
action_tracker.py - Per-action loading and error state

Each named action has its own ActionState. Nothing here couples one action to
another: failing action A never touches the entry for action B.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Union

from onboarding.runtime.types import ActionState, ErrorInfo

ActionKey = Union[str, Enum]


def action_key(action: ActionKey) -> str:
    """Normalize an action enum member or name to its string value."""
    if isinstance(action, Enum):
        return str(action.value)
    return str(action)


class ActionTracker:
    """Maps action name -> ActionState, creating entries on first reference."""

    def __init__(self) -> None:
        self._states: Dict[str, ActionState] = {}

    def get(self, action: ActionKey) -> ActionState:
        return self._states.setdefault(action_key(action), ActionState())

    def start(self, action: ActionKey) -> None:
        """Mark an action in flight, clearing its previous error."""
        self._states[action_key(action)] = ActionState(pending=True, error=None)

    def succeed(self, action: ActionKey) -> None:
        self._states[action_key(action)] = ActionState(pending=False, error=None)

    def fail(self, action: ActionKey, error: ErrorInfo) -> None:
        self._states[action_key(action)] = ActionState(pending=False, error=error)

    def is_loading(self, action: ActionKey) -> bool:
        return self.get(action).pending

    def get_error(self, action: ActionKey) -> Optional[ErrorInfo]:
        return self.get(action).error

    @property
    def pending_action(self) -> Optional[str]:
        """Name of the action currently in flight, if any."""
        for name, state in self._states.items():
            if state.pending:
                return name
        return None

    def reset(self) -> None:
        self._states.clear()

    def snapshot(self) -> Dict[str, ActionState]:
        return dict(self._states)

    def __contains__(self, action: object) -> bool:
        if not isinstance(action, (str, Enum)):
            return False
        return action_key(action) in self._states
