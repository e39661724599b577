"""
base.py - Base class for the onboarding flows.

A flow binds its named actions to async handlers that call the identity
adapters, and hands those handlers to a FlowOrchestrator. Everything a UI
needs (current step, loading/error per action, back navigation, snapshots)
is delegated to the orchestrator. Subclasses add one invoker per action.

Handlers raise on failure and return an ActionResult on success; they never
touch session state themselves.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from onboarding.runtime.auth_logging import log_auth_error, log_auth_event
from onboarding.runtime.identity import (
    IdentityAdapters,
    ProviderError,
    canonical_public_key,
)
from onboarding.runtime.stepwise import (
    ACTION_UNAVAILABLE,
    ActionResult,
    FlowOrchestrator,
    Handler,
    Listener,
    SessionSnapshot,
)
from onboarding.runtime.stepwise.orchestrator import CancelCallback, CompletionCallback
from onboarding.runtime.types import (
    AuthMethod,
    ErrorInfo,
    FlowKind,
    IdentityOrigin,
    Outcome,
    ProviderUser,
    SessionData,
    SessionEvent,
    SessionIdentity,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class OnboardingFlow(ABC):
    """Common surface of the signup, legacy-migration and direct-login flows."""

    kind: FlowKind

    def __init__(
        self,
        adapters: IdentityAdapters,
        *,
        on_complete: Optional[CompletionCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
        session_id: Optional[str] = None,
        max_events: Optional[int] = None,
    ):
        self.adapters = adapters
        self._max_events = max_events
        # Identity generated by a publish that failed; reused on retry
        self._unpublished_identity: Optional[SessionIdentity] = None
        self.orchestrator = FlowOrchestrator(
            self.kind,
            self.handlers(),
            on_complete=on_complete,
            on_cancel=on_cancel,
            session_id=session_id,
            max_events=max_events,
        )
        self.orchestrator.subscribe(self._log_action_failure)

    @abstractmethod
    def handlers(self) -> Dict[Enum, Handler]:
        """Map every action of the flow to its handler."""
        ...

    # =========================================================================
    # Delegated session surface
    # =========================================================================

    @property
    def session_id(self) -> str:
        return self.orchestrator.session_id

    @property
    def current_step(self) -> str:
        return self.orchestrator.current_step

    @property
    def data(self) -> SessionData:
        return self.orchestrator.data

    @property
    def status(self) -> SessionStatus:
        return self.orchestrator.status

    @property
    def can_go_back(self) -> bool:
        return self.orchestrator.can_go_back

    @property
    def events(self) -> List[SessionEvent]:
        return self.orchestrator.events

    @property
    def detour(self) -> Optional["OnboardingFlow"]:
        """Nested flow currently running on behalf of this one, if any."""
        return None

    def is_loading(self, action: Union[Enum, str]) -> bool:
        return self.orchestrator.is_loading(action)

    def get_error(self, action: Union[Enum, str]) -> Optional[ErrorInfo]:
        return self.orchestrator.get_error(action)

    def snapshot(self) -> SessionSnapshot:
        return self.orchestrator.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.orchestrator.subscribe(listener)

    async def invoke(self, action: Union[Enum, str], /, **payload: Any) -> None:
        await self.orchestrator.invoke(action, **payload)

    def go_back(self) -> bool:
        return self.orchestrator.go_back()

    def reset(self) -> None:
        self._unpublished_identity = None
        self.orchestrator.reset()

    async def cancel(self) -> None:
        await self.orchestrator.cancel()

    def _log_action_failure(self, event: SessionEvent, snapshot: SessionSnapshot) -> None:
        if event.kind != "action_failed":
            return
        error = event.payload.get("error") or {}
        if error.get("code") == ACTION_UNAVAILABLE:
            return
        log_auth_error(
            event.action or "unknown",
            error=error.get("message"),
            code=error.get("code"),
            flow=event.flow_kind,
            step=event.step,
            session_id=event.session_id,
        )

    # =========================================================================
    # Handler helpers shared by the flows
    # =========================================================================

    async def _authenticate_public_key(self, method: Union[AuthMethod, str], secret: Optional[str]) -> str:
        """Authenticate with the public-key provider and return canonical hex."""
        method = AuthMethod(method)
        public_key = canonical_public_key(await self.adapters.public_key.authenticate(method, secret))
        log_auth_event("public_key_sign_in", method=method.value, public_key=public_key)
        return public_key

    def _require_legacy_user(self) -> ProviderUser:
        user = self.data.legacy_provider_user
        if user is None:
            raise ProviderError("auth/no-current-session", "Sign in to your email account first.")
        return user

    def _require_identity(self) -> SessionIdentity:
        identity = self.data.identity
        if identity is None:
            raise ProviderError("identity/missing", "Create or import a key first.")
        return identity

    async def _generate_identity(self) -> SessionIdentity:
        keypair = await self.adapters.public_key.generate_identity()
        return SessionIdentity(
            public_key=canonical_public_key(keypair.public_key),
            origin=IdentityOrigin.GENERATED,
            private_material=keypair.private_material,
        )

    async def _handle_generate_identity(self) -> ActionResult:
        identity = await self._generate_identity()
        log_auth_event("identity_generated", public_key=identity.public_key)
        return ActionResult.branch(Outcome.IDENTITY_READY, identity=identity)

    async def _handle_import_identity(self, secret: str) -> ActionResult:
        public_key = await self._authenticate_public_key(AuthMethod.NSEC, secret)
        identity = SessionIdentity(public_key=public_key, origin=IdentityOrigin.IMPORTED)
        return ActionResult.branch(Outcome.IDENTITY_READY, identity=identity)

    async def _publish_profile(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Publish profile fields, generating an identity first if needed.

        An identity generated here is kept on the flow when the publish
        fails, so a retry publishes under the same key.

        Returns:
            Facts to merge: the profile draft, plus the identity when one was
            generated here.
        """
        draft = {k: v for k, v in dict(fields).items() if v is not None}
        facts: Dict[str, Any] = {"profile_draft": draft}

        identity = self.data.identity
        if identity is None:
            if self._unpublished_identity is None:
                self._unpublished_identity = await self._generate_identity()
            identity = self._unpublished_identity
            facts["identity"] = identity

        profile = dict(self.data.profile_draft)
        profile.update(draft)
        await self.adapters.publisher.publish_profile(identity.public_key, profile)
        self._unpublished_identity = None
        log_auth_event("profile_published", public_key=identity.public_key, fields=len(profile))
        return facts
