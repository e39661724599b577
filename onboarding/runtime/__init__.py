# onboarding/runtime package
# Flow orchestration runtime for the identity onboarding journeys.
#
# Core components:
#   - types: Flow vocabulary, SessionData and event dataclasses
#   - stepwise: FlowOrchestrator, ActionTracker, NavigationHistory, TransitionTable
#   - identity: Provider adapter interfaces, key canonicalization, stubs
#   - flows: SignupFlow, LegacyMigrationFlow, DirectLoginFlow
#
# Usage:
#     from onboarding.runtime.flows import create_flow
#     flow = create_flow("signup", adapters)
#     await flow.set_user_type(is_artist=False)

from .errors import (
    ActionPayloadError,
    FlowConfigError,
    FlowError,
    TransitionError,
    UnknownActionError,
)
from .types import FlowKind, SessionStatus

__all__ = [
    "ActionPayloadError",
    "FlowConfigError",
    "FlowError",
    "TransitionError",
    "UnknownActionError",
    "FlowKind",
    "SessionStatus",
]
