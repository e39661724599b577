"""
onboarding.runtime.flows - The three onboarding flows.

Usage:
    from onboarding.runtime.flows import create_flow

    flow = create_flow("legacy-migration", adapters, on_complete=done)
    await flow.authenticate_with_legacy_provider(email, password)
"""

from __future__ import annotations

from typing import Any, Dict, Type, Union

from onboarding.runtime.identity import IdentityAdapters
from onboarding.runtime.types import FlowKind

from .base import OnboardingFlow
from .direct_login import DirectLoginFlow
from .legacy_migration import LegacyMigrationFlow
from .signup import SignupFlow

FLOW_CLASSES: Dict[FlowKind, Type[OnboardingFlow]] = {
    FlowKind.SIGNUP: SignupFlow,
    FlowKind.LEGACY_MIGRATION: LegacyMigrationFlow,
    FlowKind.DIRECT_LOGIN: DirectLoginFlow,
}


def create_flow(kind: Union[FlowKind, str], adapters: IdentityAdapters, **kwargs: Any) -> OnboardingFlow:
    """Create a flow session of the given kind.

    Raises:
        ValueError: If ``kind`` is not a known flow kind.
    """
    return FLOW_CLASSES[FlowKind(kind)](adapters, **kwargs)


__all__ = [
    "FLOW_CLASSES",
    "DirectLoginFlow",
    "LegacyMigrationFlow",
    "OnboardingFlow",
    "SignupFlow",
    "create_flow",
]
