"""
legacy_migration.py - Move a legacy email account onto a public-key identity

firebase-auth / email-sent
    -> checking-links (auto lookup)
        -> no links:   profile-setup -> linking (auto link) -> complete
        -> has links:  linked-identity-auth
                           -> key matches:  complete
                           -> key differs:  identity-mismatch
                                                -> retry:   complete | identity-mismatch
                                                -> relink:  complete

Key comparison runs on canonical hex, so the same key given as hex and as
npub matches. The comparison target defaults to the most recently linked key.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from onboarding.runtime.auth_logging import log_auth_event
from onboarding.runtime.identity import (
    LinkProof,
    ProviderError,
    canonical_public_key,
    compare_public_keys,
)
from onboarding.runtime.stepwise import ActionResult, Handler
from onboarding.runtime.types import (
    AuthMethod,
    FlowKind,
    KeyMismatch,
    LegacyMigrationAction,
    LinkedIdentity,
    Outcome,
    order_linked_identities,
)

from .base import OnboardingFlow

logger = logging.getLogger(__name__)


class LegacyMigrationFlow(OnboardingFlow):
    kind = FlowKind.LEGACY_MIGRATION

    def handlers(self) -> Dict[Enum, Handler]:
        return {
            LegacyMigrationAction.AUTHENTICATE_WITH_LEGACY_PROVIDER: self._handle_authenticate_with_legacy_provider,
            LegacyMigrationAction.SEND_PASSWORDLESS_LINK: self._handle_send_passwordless_link,
            LegacyMigrationAction.CONTINUE_WITH_EXISTING_SESSION: self._handle_continue_with_existing_session,
            LegacyMigrationAction.CHECK_LINKED_IDENTITIES: self._handle_check_linked_identities,
            LegacyMigrationAction.AUTHENTICATE_WITH_LINKED_IDENTITY: self._handle_authenticate_with_linked_identity,
            LegacyMigrationAction.RESOLVE_MISMATCH_BY_RETRY: self._handle_resolve_mismatch_by_retry,
            LegacyMigrationAction.RESOLVE_MISMATCH_BY_RELINKING: self._handle_resolve_mismatch_by_relinking,
            LegacyMigrationAction.GENERATE_IDENTITY: self._handle_generate_identity,
            LegacyMigrationAction.IMPORT_IDENTITY: self._handle_import_identity,
            LegacyMigrationAction.COMPLETE_PROFILE: self._handle_complete_profile,
            LegacyMigrationAction.LINK_IDENTITY: self._handle_link_identity,
        }

    # =========================================================================
    # Invokers
    # =========================================================================

    async def authenticate_with_legacy_provider(self, email: str, password: str) -> None:
        await self.invoke(
            LegacyMigrationAction.AUTHENTICATE_WITH_LEGACY_PROVIDER, email=email, password=password
        )

    async def send_passwordless_link(self, email: str) -> None:
        await self.invoke(LegacyMigrationAction.SEND_PASSWORDLESS_LINK, email=email)

    async def continue_with_existing_session(self) -> None:
        await self.invoke(LegacyMigrationAction.CONTINUE_WITH_EXISTING_SESSION)

    async def check_linked_identities(self) -> None:
        await self.invoke(LegacyMigrationAction.CHECK_LINKED_IDENTITIES)

    async def authenticate_with_linked_identity(
        self,
        method: Union[AuthMethod, str],
        secret: Optional[str] = None,
        target_public_key: Optional[str] = None,
    ) -> None:
        await self.invoke(
            LegacyMigrationAction.AUTHENTICATE_WITH_LINKED_IDENTITY,
            method=method,
            secret=secret,
            target_public_key=target_public_key,
        )

    async def resolve_mismatch_by_retry(self, method: Union[AuthMethod, str], secret: Optional[str] = None) -> None:
        await self.invoke(LegacyMigrationAction.RESOLVE_MISMATCH_BY_RETRY, method=method, secret=secret)

    async def resolve_mismatch_by_relinking(self) -> None:
        await self.invoke(LegacyMigrationAction.RESOLVE_MISMATCH_BY_RELINKING)

    async def generate_identity(self) -> None:
        await self.invoke(LegacyMigrationAction.GENERATE_IDENTITY)

    async def import_identity(self, secret: str) -> None:
        await self.invoke(LegacyMigrationAction.IMPORT_IDENTITY, secret=secret)

    async def complete_profile(self, fields: Mapping[str, Any]) -> None:
        await self.invoke(LegacyMigrationAction.COMPLETE_PROFILE, fields=fields)

    async def link_identity(self) -> None:
        await self.invoke(LegacyMigrationAction.LINK_IDENTITY)

    # =========================================================================
    # Handlers: legacy account
    # =========================================================================

    async def _handle_authenticate_with_legacy_provider(self, email: str, password: str) -> ActionResult:
        user = await self.adapters.legacy.authenticate(email, password)
        log_auth_event("legacy_sign_in", provider_user_id=user.provider_user_id, email=user.email)
        return ActionResult.success(legacy_provider_user=user)

    async def _handle_send_passwordless_link(self, email: str) -> ActionResult:
        await self.adapters.legacy.send_passwordless_link(email)
        log_auth_event("passwordless_link_sent", email=email)
        return ActionResult.success(passwordless_email=email)

    async def _handle_continue_with_existing_session(self) -> ActionResult:
        user = await self.adapters.legacy.current_session()
        if user is None:
            raise ProviderError(
                "auth/no-current-session",
                "No signed-in account found. Sign in or open the emailed link first.",
            )
        log_auth_event("legacy_session_resumed", provider_user_id=user.provider_user_id, email=user.email)
        return ActionResult.success(legacy_provider_user=user)

    async def _handle_check_linked_identities(self) -> ActionResult:
        user = self._require_legacy_user()
        found = await self.adapters.public_key.check_linked_identities(user.provider_user_id)
        identities = order_linked_identities(
            LinkedIdentity(
                public_key=canonical_public_key(identity.public_key),
                linked_at=identity.linked_at,
                profile_summary=dict(identity.profile_summary),
            )
            for identity in found
        )
        log_auth_event(
            "linked_identities_checked",
            provider_user_id=user.provider_user_id,
            linked_count=len(identities),
        )
        if not identities:
            return ActionResult.branch(Outcome.NO_LINKED_IDENTITIES, linked_identities=())
        return ActionResult.branch(Outcome.ONE_OR_MORE_LINKED_IDENTITIES, linked_identities=identities)

    # =========================================================================
    # Handlers: linked key authentication and mismatch resolution
    # =========================================================================

    def _expected_key(self, target_public_key: Optional[str]) -> str:
        linked = [identity.public_key for identity in self.data.linked_identities]
        if target_public_key:
            target = canonical_public_key(target_public_key)
            if target not in linked:
                raise ProviderError("link/unknown-target", "That key is not linked to this account.")
            return target
        most_recent = self.data.most_recent_linked_identity
        if most_recent is None:
            raise ProviderError("link/no-linked-identity", "This account has no linked keys.")
        return most_recent.public_key

    def _compare(self, expected: str, actual: str) -> ActionResult:
        outcome = compare_public_keys(expected, actual)
        if outcome == Outcome.KEY_MATCHES:
            return ActionResult.branch(outcome, authenticated_public_key=actual, mismatch=None)
        log_auth_event("key_mismatch", expected_public_key=expected, actual_public_key=actual)
        return ActionResult.branch(
            outcome,
            authenticated_public_key=actual,
            mismatch=KeyMismatch(expected_public_key=expected, actual_public_key=actual),
        )

    async def _handle_authenticate_with_linked_identity(
        self,
        method: Union[AuthMethod, str],
        secret: Optional[str] = None,
        target_public_key: Optional[str] = None,
    ) -> ActionResult:
        expected = self._expected_key(target_public_key)
        actual = await self._authenticate_public_key(method, secret)
        return self._compare(expected, actual)

    async def _handle_resolve_mismatch_by_retry(
        self, method: Union[AuthMethod, str], secret: Optional[str] = None
    ) -> ActionResult:
        mismatch = self.data.mismatch
        expected = mismatch.expected_public_key if mismatch else self._expected_key(None)
        actual = await self._authenticate_public_key(method, secret)
        return self._compare(expected, actual)

    async def _handle_resolve_mismatch_by_relinking(self) -> ActionResult:
        mismatch = self.data.mismatch
        if mismatch is None:
            raise ProviderError("link/no-mismatch", "There is no key mismatch to resolve.")
        user = self._require_legacy_user()

        new_key = mismatch.actual_public_key
        await self.adapters.public_key.link_identity(
            user.provider_user_id,
            new_key,
            LinkProof(provider_token=user.id_token, public_key=new_key),
        )
        log_auth_event(
            "identity_relinked",
            provider_user_id=user.provider_user_id,
            public_key=new_key,
            expected_public_key=mismatch.expected_public_key,
        )
        return ActionResult.success(mismatch=None, linked_public_key=new_key)

    # =========================================================================
    # Handlers: new identity
    # =========================================================================

    async def _handle_complete_profile(self, fields: Mapping[str, Any]) -> ActionResult:
        self._require_legacy_user()
        facts = await self._publish_profile(fields)
        return ActionResult(Outcome.SUCCESS, facts)

    async def _handle_link_identity(self) -> ActionResult:
        user = self._require_legacy_user()
        identity = self._require_identity()
        await self.adapters.public_key.link_identity(
            user.provider_user_id,
            identity.public_key,
            LinkProof(provider_token=user.id_token, public_key=identity.public_key),
        )
        log_auth_event("identity_linked", provider_user_id=user.provider_user_id, public_key=identity.public_key)
        return ActionResult.success(mismatch=None, linked_public_key=identity.public_key)
