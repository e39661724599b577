"""
direct_login.py - Public-key sign-in with an optional migration detour

auth -> complete, or auth -> migration -> complete where "migration" runs a
nested LegacyMigrationFlow. The nested flow reports back through its
callbacks: completion invokes finish_migration here, cancellation steps this
flow back to auth and discards the nested flow.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from onboarding.runtime.identity import ProviderError, canonical_public_key
from onboarding.runtime.stepwise import ActionResult, Handler
from onboarding.runtime.types import (
    AuthMethod,
    DirectLoginAction,
    DirectLoginStep,
    FlowKind,
    FlowResult,
    Outcome,
)

from .base import OnboardingFlow
from .legacy_migration import LegacyMigrationFlow

logger = logging.getLogger(__name__)


class DirectLoginFlow(OnboardingFlow):
    kind = FlowKind.DIRECT_LOGIN

    def __init__(self, *args: Any, **kwargs: Any):
        self._migration: Optional[LegacyMigrationFlow] = None
        super().__init__(*args, **kwargs)

    def handlers(self) -> Dict[Enum, Handler]:
        return {
            DirectLoginAction.AUTHENTICATE_WITH_PUBLIC_KEY: self._handle_authenticate_with_public_key,
            DirectLoginAction.START_MIGRATION: self._handle_start_migration,
            DirectLoginAction.FINISH_MIGRATION: self._handle_finish_migration,
        }

    @property
    def migration(self) -> Optional[LegacyMigrationFlow]:
        """The nested legacy-migration flow while the detour is active."""
        return self._migration

    @property
    def detour(self) -> Optional[LegacyMigrationFlow]:
        return self._migration

    # =========================================================================
    # Invokers
    # =========================================================================

    async def authenticate_with_public_key(self, method: Union[AuthMethod, str], secret: Optional[str] = None) -> None:
        await self.invoke(DirectLoginAction.AUTHENTICATE_WITH_PUBLIC_KEY, method=method, secret=secret)

    async def start_migration(self) -> None:
        await self.invoke(DirectLoginAction.START_MIGRATION)

    async def finish_migration(self, result: FlowResult) -> None:
        await self.invoke(DirectLoginAction.FINISH_MIGRATION, result=result)

    def go_back(self) -> bool:
        leaving_migration = self.current_step == DirectLoginStep.MIGRATION.value
        moved = super().go_back()
        if moved and leaving_migration:
            self._drop_migration()
        return moved

    def reset(self) -> None:
        self._drop_migration()
        super().reset()

    # =========================================================================
    # Nested flow
    # =========================================================================

    def _drop_migration(self) -> None:
        child = self._migration
        if child is None:
            return
        # Detach so a late completion cannot reach this flow
        child.orchestrator.on_complete = None
        child.orchestrator.on_cancel = None
        self._migration = None
        self.orchestrator.detour = None
        logger.debug("Discarded migration detour %s of session %s", child.session_id, self.session_id)

    async def _on_migration_complete(self, result: FlowResult) -> None:
        await self.finish_migration(result)

    def _on_migration_cancel(self) -> None:
        logger.info("Migration detour cancelled, returning session %s to auth", self.session_id)
        if not self.go_back():
            self._drop_migration()

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_authenticate_with_public_key(
        self, method: Union[AuthMethod, str], secret: Optional[str] = None
    ) -> ActionResult:
        public_key = await self._authenticate_public_key(method, secret)
        return ActionResult.success(authenticated_public_key=public_key)

    async def _handle_start_migration(self) -> ActionResult:
        self._drop_migration()
        child = LegacyMigrationFlow(
            self.adapters,
            on_complete=self._on_migration_complete,
            on_cancel=self._on_migration_cancel,
            max_events=self._max_events,
        )
        self._migration = child
        self.orchestrator.detour = child.orchestrator
        logger.info("Session %s started migration detour %s", self.session_id, child.session_id)
        return ActionResult(Outcome.DETOUR)

    async def _handle_finish_migration(self, result: Union[FlowResult, Mapping[str, Any]]) -> ActionResult:
        if isinstance(result, Mapping):
            result = FlowResult(**result)
        if not result.success:
            raise ProviderError("migration/failed", result.error or "Account migration did not complete.")

        facts: Dict[str, Any] = {}
        if result.public_key:
            facts["authenticated_public_key"] = canonical_public_key(result.public_key)
        if self._migration is not None:
            facts["legacy_provider_user"] = self._migration.data.legacy_provider_user
        return ActionResult.success(**facts)
