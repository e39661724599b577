"""
errors.py - Exception hierarchy for the flow engine

These are programming and configuration errors. Adapter failures during an
action are a different thing: they are normalized into ErrorInfo and recorded
against the action (see onboarding.runtime.identity.errors).
"""

from __future__ import annotations

from typing import List, Optional


class FlowError(Exception):
    """Base exception for flow engine errors."""

    pass


class FlowConfigError(FlowError):
    """Raised when a flow definition or handler binding is inconsistent."""

    def __init__(self, flow_key: str, problems: List[str]):
        self.flow_key = flow_key
        self.problems = list(problems)
        super().__init__(f"Flow '{flow_key}' is misconfigured: {'; '.join(self.problems)}")


class TransitionError(FlowError):
    """Raised when an action outcome has no entry in the transition table.

    This is fatal to the session: the session is marked failed before the
    error propagates.
    """

    def __init__(self, flow_key: str, step: str, action: str, outcome: Optional[str]):
        self.flow_key = flow_key
        self.step = step
        self.action = action
        self.outcome = outcome
        super().__init__(
            f"No transition in flow '{flow_key}' for step '{step}', "
            f"action '{action}', outcome '{outcome}'"
        )


class UnknownActionError(FlowError):
    """Raised when an action name is not part of the flow's action set."""

    def __init__(self, flow_key: str, action: str):
        self.flow_key = flow_key
        self.action = action
        super().__init__(f"Flow '{flow_key}' has no action '{action}'")


class ActionPayloadError(FlowError):
    """Raised when an action payload does not fit the handler's signature."""

    def __init__(self, action: str, detail: str):
        self.action = action
        self.detail = detail
        super().__init__(f"Invalid payload for action '{action}': {detail}")
