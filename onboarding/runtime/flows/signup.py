"""
signup.py - New account flow

user-type -> [artist-type] -> profile-setup -> [legacy-backup -> email-sent] -> complete

Artists are offered an optional email backup: a passwordless sign-in link is
sent, and once the user has followed it the new key is linked to that email
account.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Mapping

from onboarding.runtime.auth_logging import log_auth_event
from onboarding.runtime.identity import LinkProof, ProviderError
from onboarding.runtime.stepwise import ActionResult, Handler
from onboarding.runtime.types import FlowKind, Outcome, SignupAction

from .base import OnboardingFlow

logger = logging.getLogger(__name__)


class SignupFlow(OnboardingFlow):
    kind = FlowKind.SIGNUP

    def handlers(self) -> Dict[Enum, Handler]:
        return {
            SignupAction.SET_USER_TYPE: self._handle_set_user_type,
            SignupAction.SET_ARTIST_TYPE: self._handle_set_artist_type,
            SignupAction.GENERATE_IDENTITY: self._handle_generate_identity,
            SignupAction.IMPORT_IDENTITY: self._handle_import_identity,
            SignupAction.COMPLETE_PROFILE: self._handle_complete_profile,
            SignupAction.SETUP_LEGACY_BACKUP: self._handle_setup_legacy_backup,
            SignupAction.SKIP_LEGACY_BACKUP: self._handle_skip_legacy_backup,
            SignupAction.CONFIRM_LEGACY_BACKUP: self._handle_confirm_legacy_backup,
        }

    # =========================================================================
    # Invokers
    # =========================================================================

    async def set_user_type(self, is_artist: bool) -> None:
        await self.invoke(SignupAction.SET_USER_TYPE, is_artist=is_artist)

    async def set_artist_type(self, is_solo: bool) -> None:
        await self.invoke(SignupAction.SET_ARTIST_TYPE, is_solo=is_solo)

    async def generate_identity(self) -> None:
        await self.invoke(SignupAction.GENERATE_IDENTITY)

    async def import_identity(self, secret: str) -> None:
        await self.invoke(SignupAction.IMPORT_IDENTITY, secret=secret)

    async def complete_profile(self, fields: Mapping[str, Any]) -> None:
        await self.invoke(SignupAction.COMPLETE_PROFILE, fields=fields)

    async def setup_legacy_backup(self, email: str) -> None:
        await self.invoke(SignupAction.SETUP_LEGACY_BACKUP, email=email)

    async def skip_legacy_backup(self) -> None:
        await self.invoke(SignupAction.SKIP_LEGACY_BACKUP)

    async def confirm_legacy_backup(self) -> None:
        await self.invoke(SignupAction.CONFIRM_LEGACY_BACKUP)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_set_user_type(self, is_artist: bool) -> ActionResult:
        if is_artist:
            return ActionResult.branch(Outcome.ARTIST, is_artist=True)
        return ActionResult.branch(Outcome.LISTENER, is_artist=False, is_solo_artist=None)

    async def _handle_set_artist_type(self, is_solo: bool) -> ActionResult:
        return ActionResult.success(is_solo_artist=bool(is_solo))

    async def _handle_complete_profile(self, fields: Mapping[str, Any]) -> ActionResult:
        facts = await self._publish_profile(fields)
        outcome = Outcome.ARTIST if self.data.is_artist else Outcome.LISTENER
        return ActionResult(outcome, facts)

    async def _handle_setup_legacy_backup(self, email: str) -> ActionResult:
        await self.adapters.legacy.send_passwordless_link(email)
        log_auth_event("backup_link_sent", email=email)
        return ActionResult.success(passwordless_email=email)

    async def _handle_skip_legacy_backup(self) -> ActionResult:
        return ActionResult(Outcome.SKIP)

    async def _handle_confirm_legacy_backup(self) -> ActionResult:
        identity = self._require_identity()
        user = await self.adapters.legacy.current_session()
        if user is None:
            raise ProviderError(
                "auth/no-current-session",
                "Open the sign-in link we emailed you, then confirm the backup.",
            )

        await self.adapters.public_key.link_identity(
            user.provider_user_id,
            identity.public_key,
            LinkProof(provider_token=user.id_token, public_key=identity.public_key),
        )
        log_auth_event(
            "backup_linked",
            provider_user_id=user.provider_user_id,
            email=user.email,
            public_key=identity.public_key,
        )
        return ActionResult.success(legacy_provider_user=user, linked_public_key=identity.public_key)
