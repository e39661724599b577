"""
types - Core type definitions for the onboarding runtime

Flow vocabulary (kinds, steps, actions, outcomes), the session data model,
events and results, and their dict serializers.

Usage:
    from onboarding.runtime.types import (
        FlowKind, Outcome, AuthMethod,
        SignupStep, SignupAction,
        LegacyMigrationStep, LegacyMigrationAction,
        DirectLoginStep, DirectLoginAction,
        SessionData, SessionIdentity, IdentityOrigin, KeyMismatch,
        LinkedIdentity, ProviderUser, ErrorInfo, ActionState,
        SessionStatus, FlowResult, SessionEvent,
        generate_session_id,
    )
"""

from __future__ import annotations

from ._ids import ActionName, SessionId, StepId, generate_session_id
from ._time import _datetime_to_iso, _iso_to_datetime, _utcnow
from .flows import (
    ACTION_ENUMS,
    STEP_ENUMS,
    AuthMethod,
    DirectLoginAction,
    DirectLoginStep,
    FlowKind,
    LegacyMigrationAction,
    LegacyMigrationStep,
    Outcome,
    SignupAction,
    SignupStep,
)
from .session import (
    ActionState,
    ErrorInfo,
    FlowResult,
    IdentityOrigin,
    KeyMismatch,
    LinkedIdentity,
    ProviderUser,
    SessionData,
    SessionEvent,
    SessionIdentity,
    SessionStatus,
    action_state_to_dict,
    error_info_to_dict,
    flow_result_to_dict,
    linked_identity_to_dict,
    order_linked_identities,
    session_data_to_dict,
    session_event_to_dict,
)

__all__ = [
    # ids
    "ActionName",
    "SessionId",
    "StepId",
    "generate_session_id",
    # time
    "_datetime_to_iso",
    "_iso_to_datetime",
    "_utcnow",
    # flow vocabulary
    "ACTION_ENUMS",
    "STEP_ENUMS",
    "AuthMethod",
    "DirectLoginAction",
    "DirectLoginStep",
    "FlowKind",
    "LegacyMigrationAction",
    "LegacyMigrationStep",
    "Outcome",
    "SignupAction",
    "SignupStep",
    # session model
    "ActionState",
    "ErrorInfo",
    "FlowResult",
    "IdentityOrigin",
    "KeyMismatch",
    "LinkedIdentity",
    "ProviderUser",
    "SessionData",
    "SessionEvent",
    "SessionIdentity",
    "SessionStatus",
    # serializers
    "action_state_to_dict",
    "error_info_to_dict",
    "flow_result_to_dict",
    "linked_identity_to_dict",
    "order_linked_identities",
    "session_data_to_dict",
    "session_event_to_dict",
]
