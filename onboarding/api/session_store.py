"""
session_store.py - In-memory registry of live flow sessions for the API.

Sessions are kept in creation order and the oldest is evicted once the cap
is reached. Nested detour sessions are not stored separately; they are found
through their parent.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Union

from onboarding.runtime.flows import OnboardingFlow, create_flow
from onboarding.runtime.identity import IdentityAdapters
from onboarding.runtime.types import FlowKind

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], IdentityAdapters]


class SessionStore:
    """Holds top-level flow sessions keyed by session id."""

    def __init__(self, adapter_factory: AdapterFactory, max_sessions: int):
        self._adapter_factory = adapter_factory
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[str, OnboardingFlow]" = OrderedDict()

    def create(self, kind: Union[FlowKind, str]) -> OnboardingFlow:
        flow = create_flow(kind, self._adapter_factory())
        self._sessions[flow.session_id] = flow
        while len(self._sessions) > self._max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Evicted session %s (store holds %d sessions)", evicted_id, self._max_sessions)
        logger.info("Created %s session %s", flow.kind.value, flow.session_id)
        return flow

    def get(self, session_id: str) -> Optional[OnboardingFlow]:
        """Find a session, including detour sessions nested under a parent."""
        flow = self._sessions.get(session_id)
        if flow is not None:
            return flow
        for parent in self._sessions.values():
            child = parent.detour
            while child is not None:
                if child.session_id == session_id:
                    return child
                child = child.detour
        return None

    def list(self) -> List[OnboardingFlow]:
        return list(self._sessions.values())

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def stats(self) -> Dict[str, int]:
        return {"sessions": len(self._sessions), "max_sessions": self._max_sessions}

    def __len__(self) -> int:
        return len(self._sessions)
