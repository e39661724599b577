"""
session.py - FlowSession, the state owned by one orchestrator.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Optional

from onboarding.runtime.types import (
    FlowKind,
    FlowResult,
    SessionData,
    SessionEvent,
    SessionId,
    SessionStatus,
    _utcnow,
)

from .action_tracker import ActionTracker
from .history import NavigationHistory


@dataclass
class FlowSession:
    """One wizard instance.

    Invariants: ``current_step`` is a step of ``flow_kind``; ``history`` holds
    only prior states; at most one action in ``actions`` is pending.

    Attributes:
        generation: Bumped by reset and cancel; an action that resumes under
            a different generation discards its result.
        event_seq: Last event sequence number handed out.
    """

    session_id: SessionId
    flow_kind: FlowKind
    current_step: str
    history: NavigationHistory
    actions: ActionTracker = field(default_factory=ActionTracker)
    data: SessionData = field(default_factory=SessionData)
    status: SessionStatus = SessionStatus.ACTIVE
    result: Optional[FlowResult] = None
    events: Deque[SessionEvent] = field(default_factory=deque)
    generation: int = 0
    event_seq: int = 0
    created_at: datetime = field(default_factory=_utcnow)
