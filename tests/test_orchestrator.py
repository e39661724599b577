"""Tests for FlowOrchestrator.

Drives the legacy-migration transition table with scripted handlers, so the
engine's guarantees (per-action state, single flight, back navigation,
terminal irreversibility, fatal transition errors) are tested without any
identity provider involved.
"""

import asyncio
import sys
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from onboarding.runtime.errors import (
    ActionPayloadError,
    FlowConfigError,
    TransitionError,
    UnknownActionError,
)
from onboarding.runtime.identity import ProviderError
from onboarding.runtime.stepwise import (
    ACTION_UNAVAILABLE,
    ActionResult,
    FlowOrchestrator,
    resolved_public_key,
)
from onboarding.runtime.types import (
    FlowKind,
    FlowResult,
    IdentityOrigin,
    LegacyMigrationAction,
    LinkedIdentity,
    Outcome,
    ProviderUser,
    SessionData,
    SessionIdentity,
    SessionStatus,
)

LM = LegacyMigrationAction
USER = ProviderUser("u1", "user@example.com", id_token="token")
KEY_A = "a" * 64
KEY_B = "b" * 64


def _handlers(**overrides):
    """Handlers for every legacy-migration action, with optional overrides.

    Defaults walk the no-linked-identities path: sign-in succeeds, the lookup
    finds nothing, identity generation and profile/link steps succeed.
    """

    async def succeed(**payload):
        return ActionResult.success()

    async def no_links():
        return ActionResult.branch(Outcome.NO_LINKED_IDENTITIES, linked_identities=())

    async def identity_ready():
        return ActionResult.branch(
            Outcome.IDENTITY_READY, identity=SessionIdentity(KEY_A, IdentityOrigin.GENERATED)
        )

    handlers = {action.value: succeed for action in LM}
    handlers[LM.CHECK_LINKED_IDENTITIES.value] = no_links
    handlers[LM.GENERATE_IDENTITY.value] = identity_ready
    handlers.update(overrides)
    return handlers


def _orchestrator(**kwargs):
    handlers = _handlers(**kwargs.pop("handlers", {}))
    return FlowOrchestrator(FlowKind.LEGACY_MIGRATION, handlers, **kwargs)


def _kinds(orchestrator):
    return [event.kind for event in orchestrator.events]


async def _to_profile_setup(orchestrator):
    await orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="user@example.com", password="pw")
    assert orchestrator.current_step == "profile-setup"


# ============================================================================
# Construction
# ============================================================================


class TestInitialState:
    def test_starts_at_initial_step(self):
        orchestrator = _orchestrator()
        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.status == SessionStatus.ACTIVE
        assert orchestrator.data == SessionData()
        assert orchestrator.can_go_back is False
        assert orchestrator.events == []
        assert orchestrator.session_id.startswith("ses-")

    def test_snapshot_lists_offered_actions(self):
        snapshot = _orchestrator(session_id="ses-fixed").snapshot()
        assert snapshot.session_id == "ses-fixed"
        assert snapshot.title == "Sign In to Firebase"
        assert snapshot.actions_available == (
            "authenticate_with_legacy_provider",
            "send_passwordless_link",
            "continue_with_existing_session",
        )

    def test_missing_handler_rejected(self):
        handlers = _handlers()
        del handlers[LM.LINK_IDENTITY.value]
        with pytest.raises(FlowConfigError):
            FlowOrchestrator(FlowKind.LEGACY_MIGRATION, handlers)


# ============================================================================
# invoke()
# ============================================================================


class TestInvoke:
    def test_success_moves_and_runs_auto_action(self):
        orchestrator = _orchestrator()
        asyncio.run(_to_profile_setup(orchestrator))

        assert orchestrator.session.history.steps == ["firebase-auth", "checking-links"]
        assert _kinds(orchestrator) == [
            "action_started",
            "action_succeeded",
            "step_changed",
            "action_started",
            "action_succeeded",
            "step_changed",
        ]
        assert [e.seq for e in orchestrator.events] == [1, 2, 3, 4, 5, 6]
        assert orchestrator.events[3].action == "check_linked_identities"

    def test_failure_records_error_and_keeps_step(self):
        async def wrong_password(email, password):
            raise ProviderError("auth/wrong-password", "The password is invalid")

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: wrong_password})
        asyncio.run(orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="bad"))

        error = orchestrator.get_error(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER)
        assert error.message == "Incorrect password."
        assert error.code == "auth/wrong-password"
        assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is False
        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.data == SessionData()
        assert len(orchestrator.session.history) == 0
        assert orchestrator.events[-1].kind == "action_failed"
        assert orchestrator.events[-1].payload["error"]["code"] == "auth/wrong-password"

    def test_action_errors_are_independent(self):
        async def link_down(email):
            raise ProviderError("auth/network-request-failed")

        async def wrong_password(email, password):
            raise ProviderError("auth/wrong-password")

        orchestrator = _orchestrator(handlers={
            LM.SEND_PASSWORDLESS_LINK.value: link_down,
            LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: wrong_password,
        })

        async def scenario():
            await orchestrator.invoke(LM.SEND_PASSWORDLESS_LINK, email="x@y.z")
            await orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="bad")

        asyncio.run(scenario())
        assert orchestrator.get_error(LM.SEND_PASSWORDLESS_LINK).code == "auth/network-request-failed"
        assert orchestrator.get_error(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER).code == "auth/wrong-password"
        assert orchestrator.get_error(LM.CONTINUE_WITH_EXISTING_SESSION) is None

    def test_retry_clears_error(self):
        attempts = []

        async def flaky(email, password):
            attempts.append(password)
            if len(attempts) == 1:
                raise ProviderError("auth/wrong-password")
            return ActionResult.success(legacy_provider_user=USER)

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: flaky})

        async def scenario():
            await orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="bad")
            await orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="good")

        asyncio.run(scenario())
        assert orchestrator.get_error(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is None
        assert orchestrator.data.legacy_provider_user == USER
        assert orchestrator.current_step == "profile-setup"

    def test_handler_returning_none_counts_as_success(self):
        async def quiet(**payload):
            return None

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: quiet})
        asyncio.run(_to_profile_setup(orchestrator))

    def test_same_step_transition_merges_without_history(self):
        orchestrator = _orchestrator()

        async def scenario():
            await _to_profile_setup(orchestrator)
            await orchestrator.invoke(LM.GENERATE_IDENTITY)

        asyncio.run(scenario())
        assert orchestrator.current_step == "profile-setup"
        assert len(orchestrator.session.history) == 2
        assert orchestrator.data.identity.public_key == KEY_A
        assert _kinds(orchestrator)[-1] == "action_succeeded"

    def test_unoffered_action_records_unavailable(self):
        called = []

        async def link():
            called.append(True)
            return ActionResult.success()

        orchestrator = _orchestrator(handlers={LM.LINK_IDENTITY.value: link})
        asyncio.run(orchestrator.invoke(LM.LINK_IDENTITY))

        assert called == []
        assert orchestrator.get_error(LM.LINK_IDENTITY).code == ACTION_UNAVAILABLE
        assert orchestrator.current_step == "firebase-auth"

    def test_unknown_action_raises(self):
        orchestrator = _orchestrator()
        with pytest.raises(UnknownActionError):
            asyncio.run(orchestrator.invoke("fly_to_the_moon"))

    def test_bad_payload_raises_before_anything_changes(self):
        async def authenticate(email, password):
            return ActionResult.success()

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: authenticate})
        with pytest.raises(ActionPayloadError):
            asyncio.run(orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z"))
        assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is False
        assert orchestrator.events == []

    def test_payload_key_named_action_is_payload_error(self):
        async def authenticate(email, password):
            return ActionResult.success()

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: authenticate})
        with pytest.raises(ActionPayloadError):
            asyncio.run(orchestrator.invoke(
                LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, action="x", email="x@y.z", password="pw"
            ))
        assert orchestrator.events == []

    def test_timeout_normalized(self):
        async def slow(email, password):
            raise asyncio.TimeoutError()

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: slow})
        asyncio.run(orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw"))
        assert orchestrator.get_error(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER).code == "timeout"


# ============================================================================
# Single flight
# ============================================================================


class TestSingleFlight:
    def test_second_invoke_ignored_while_pending(self):
        calls = []

        async def scenario():
            gate = asyncio.Event()

            async def slow(email, password):
                calls.append(email)
                await gate.wait()
                return ActionResult.success()

            orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: slow})
            first = asyncio.create_task(
                orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="first@x.y", password="pw")
            )
            await asyncio.sleep(0)
            assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER)

            await orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="second@x.y", password="pw")
            await orchestrator.invoke(LM.SEND_PASSWORDLESS_LINK, email="first@x.y")

            gate.set()
            await first
            return orchestrator

        orchestrator = asyncio.run(scenario())
        assert calls == ["first@x.y"]
        assert orchestrator.current_step == "profile-setup"
        assert _kinds(orchestrator).count("action_ignored") == 2
        assert orchestrator.get_error(LM.SEND_PASSWORDLESS_LINK) is None


# ============================================================================
# Back navigation
# ============================================================================


class TestBackNavigation:
    def _linked_orchestrator(self, lookups):
        async def authenticate(email, password):
            return ActionResult.success(legacy_provider_user=USER)

        async def one_link():
            lookups.append(True)
            linked = (LinkedIdentity(KEY_A, is_most_recent=True),)
            return ActionResult.branch(Outcome.ONE_OR_MORE_LINKED_IDENTITIES, linked_identities=linked)

        return _orchestrator(handlers={
            LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: authenticate,
            LM.CHECK_LINKED_IDENTITIES.value: one_link,
        })

    def test_back_restores_step_and_data(self):
        lookups = []
        orchestrator = self._linked_orchestrator(lookups)
        asyncio.run(orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw"))
        assert orchestrator.current_step == "linked-identity-auth"
        assert len(orchestrator.data.linked_identities) == 1

        assert orchestrator.go_back() is True
        assert orchestrator.current_step == "checking-links"
        assert orchestrator.data.legacy_provider_user == USER
        assert orchestrator.data.linked_identities == ()

        assert orchestrator.go_back() is True
        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.data == SessionData()

        assert orchestrator.go_back() is False
        assert orchestrator.current_step == "firebase-auth"
        assert lookups == [True]
        assert _kinds(orchestrator).count("navigated_back") == 2

    def test_back_keeps_action_errors(self):
        async def bad_import(secret):
            raise ProviderError("missing-secret", "A secret is required")

        orchestrator = _orchestrator(handlers={LM.IMPORT_IDENTITY.value: bad_import})

        async def scenario():
            await _to_profile_setup(orchestrator)
            await orchestrator.invoke(LM.IMPORT_IDENTITY, secret="")

        asyncio.run(scenario())
        assert orchestrator.go_back() is True
        assert orchestrator.get_error(LM.IMPORT_IDENTITY).code == "missing-secret"

    def test_back_refused_while_action_pending(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow():
                await gate.wait()
                return ActionResult.branch(
                    Outcome.IDENTITY_READY, identity=SessionIdentity(KEY_A, IdentityOrigin.GENERATED)
                )

            orchestrator = _orchestrator(handlers={LM.GENERATE_IDENTITY.value: slow})
            await _to_profile_setup(orchestrator)
            task = asyncio.create_task(orchestrator.invoke(LM.GENERATE_IDENTITY))
            await asyncio.sleep(0)
            refused = orchestrator.go_back()
            gate.set()
            await task
            return orchestrator, refused

        orchestrator, refused = asyncio.run(scenario())
        assert refused is False
        assert orchestrator.current_step == "profile-setup"
        assert orchestrator.data.identity is not None

    def test_non_reversible_step_refuses_back(self):
        async def link_fails():
            raise ProviderError("link/unavailable", "Linking service unavailable")

        orchestrator = _orchestrator(handlers={LM.LINK_IDENTITY.value: link_fails})

        async def scenario():
            await _to_profile_setup(orchestrator)
            await orchestrator.invoke(LM.COMPLETE_PROFILE, fields={"name": "A"})

        asyncio.run(scenario())
        assert orchestrator.current_step == "linking"
        assert orchestrator.get_error(LM.LINK_IDENTITY).message == "Linking service unavailable"
        assert len(orchestrator.session.history) == 3
        assert orchestrator.can_go_back is False
        assert orchestrator.go_back() is False
        assert orchestrator.current_step == "linking"


# ============================================================================
# Completion and fatal errors
# ============================================================================


class TestCompletion:
    def _complete(self, on_complete):
        async def link():
            return ActionResult.success(linked_public_key=KEY_B)

        orchestrator = _orchestrator(handlers={LM.LINK_IDENTITY.value: link}, on_complete=on_complete)

        async def scenario():
            await _to_profile_setup(orchestrator)
            await orchestrator.invoke(LM.COMPLETE_PROFILE, fields={})

        asyncio.run(scenario())
        return orchestrator

    def test_terminal_step_completes_session(self):
        results = []
        orchestrator = self._complete(results.append)

        assert orchestrator.current_step == "complete"
        assert orchestrator.status == SessionStatus.COMPLETED
        assert results == [FlowResult(success=True, public_key=KEY_B)]
        assert orchestrator.result == results[0]
        assert _kinds(orchestrator)[-1] == "session_completed"

    def test_async_completion_callback_awaited(self):
        results = []

        async def on_complete(result):
            await asyncio.sleep(0)
            results.append(result)

        self._complete(on_complete)
        assert len(results) == 1

    def test_terminal_step_is_irreversible(self):
        orchestrator = self._complete(None)
        event_count = len(orchestrator.events)

        assert orchestrator.can_go_back is False
        assert orchestrator.go_back() is False
        asyncio.run(orchestrator.invoke(LM.LINK_IDENTITY))
        assert orchestrator.current_step == "complete"
        assert len(orchestrator.events) == event_count
        assert orchestrator.snapshot().actions_available == ()

    def test_missing_transition_fails_session(self):
        results = []

        async def odd_outcome(email, password):
            return ActionResult(Outcome.SKIP, {"legacy_provider_user": USER})

        orchestrator = _orchestrator(
            handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: odd_outcome},
            on_complete=results.append,
        )
        with pytest.raises(TransitionError) as exc_info:
            asyncio.run(orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw"))

        assert exc_info.value.step == "firebase-auth"
        assert exc_info.value.outcome == "skip"
        assert orchestrator.status == SessionStatus.FAILED
        assert orchestrator.data == SessionData()
        assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is False
        assert results[0].success is False
        assert "skip" in results[0].error

    def test_unknown_fact_is_a_programming_error(self):
        async def bad_facts(email, password):
            return ActionResult.success(shoe_size=44)

        orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: bad_facts})
        with pytest.raises(ValueError):
            asyncio.run(orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw"))
        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is False


# ============================================================================
# reset() and cancel()
# ============================================================================


class TestResetAndCancel:
    def test_reset_restores_initial_state(self):
        async def bad_import(secret):
            raise ProviderError("missing-secret")

        orchestrator = _orchestrator(handlers={LM.IMPORT_IDENTITY.value: bad_import})

        async def scenario():
            await _to_profile_setup(orchestrator)
            await orchestrator.invoke(LM.GENERATE_IDENTITY)
            await orchestrator.invoke(LM.IMPORT_IDENTITY, secret="")

        asyncio.run(scenario())
        orchestrator.reset()

        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.data == SessionData()
        assert len(orchestrator.session.history) == 0
        assert orchestrator.get_error(LM.IMPORT_IDENTITY) is None
        assert _kinds(orchestrator)[-1] == "session_reset"

    def test_reset_discards_in_flight_result(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow(email, password):
                await gate.wait()
                return ActionResult.success(legacy_provider_user=USER)

            orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: slow})
            task = asyncio.create_task(
                orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw")
            )
            await asyncio.sleep(0)
            orchestrator.reset()
            gate.set()
            await task
            return orchestrator

        orchestrator = asyncio.run(scenario())
        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.data == SessionData()
        assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is False

    def test_reset_reactivates_finished_session(self):
        async def link():
            return ActionResult.success(linked_public_key=KEY_B)

        orchestrator = _orchestrator(handlers={LM.LINK_IDENTITY.value: link})

        async def scenario():
            await _to_profile_setup(orchestrator)
            await orchestrator.invoke(LM.COMPLETE_PROFILE, fields={})

        asyncio.run(scenario())
        assert orchestrator.status == SessionStatus.COMPLETED
        orchestrator.reset()
        assert orchestrator.status == SessionStatus.ACTIVE
        assert orchestrator.result is None

    def test_cancel_fires_callback_once(self):
        cancelled = []
        orchestrator = _orchestrator(on_cancel=lambda: cancelled.append(True))

        async def scenario():
            await orchestrator.cancel()
            await orchestrator.cancel()
            await orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw")

        asyncio.run(scenario())
        assert cancelled == [True]
        assert orchestrator.status == SessionStatus.CANCELLED
        assert orchestrator.current_step == "firebase-auth"
        assert _kinds(orchestrator) == ["session_cancelled"]

    def test_cancel_discards_in_flight_result(self):
        async def scenario():
            gate = asyncio.Event()

            async def slow(email, password):
                await gate.wait()
                return ActionResult.success(legacy_provider_user=USER)

            orchestrator = _orchestrator(handlers={LM.AUTHENTICATE_WITH_LEGACY_PROVIDER.value: slow})
            task = asyncio.create_task(
                orchestrator.invoke(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER, email="x@y.z", password="pw")
            )
            await asyncio.sleep(0)
            await orchestrator.cancel()
            gate.set()
            await task
            return orchestrator

        orchestrator = asyncio.run(scenario())
        assert orchestrator.current_step == "firebase-auth"
        assert orchestrator.data.legacy_provider_user is None
        assert orchestrator.is_loading(LM.AUTHENTICATE_WITH_LEGACY_PROVIDER) is False


# ============================================================================
# Observers
# ============================================================================


class TestEvents:
    def test_subscribe_and_unsubscribe(self):
        seen = []
        orchestrator = _orchestrator()
        unsubscribe = orchestrator.subscribe(lambda event, snapshot: seen.append((event.kind, snapshot.step)))

        asyncio.run(orchestrator.invoke(LM.SEND_PASSWORDLESS_LINK, email="x@y.z"))
        assert seen[-1] == ("step_changed", "email-sent")

        unsubscribe()
        count = len(seen)
        orchestrator.go_back()
        assert len(seen) == count

    def test_failing_listener_does_not_break_session(self):
        def broken(event, snapshot):
            raise RuntimeError("listener bug")

        orchestrator = _orchestrator()
        orchestrator.subscribe(broken)
        asyncio.run(orchestrator.invoke(LM.SEND_PASSWORDLESS_LINK, email="x@y.z"))
        assert orchestrator.current_step == "email-sent"

    def test_event_log_is_bounded(self):
        orchestrator = _orchestrator(max_events=3)
        asyncio.run(_to_profile_setup(orchestrator))
        assert [e.seq for e in orchestrator.events] == [4, 5, 6]


class TestResolvedPublicKey:
    def test_precedence(self):
        identity = SessionIdentity(KEY_A, IdentityOrigin.GENERATED)
        assert resolved_public_key(SessionData()) is None
        assert resolved_public_key(SessionData(identity=identity)) == KEY_A
        assert resolved_public_key(SessionData(identity=identity, authenticated_public_key=KEY_B)) == KEY_B
        data = SessionData(identity=identity, authenticated_public_key=KEY_B, linked_public_key="c" * 64)
        assert resolved_public_key(data) == "c" * 64
