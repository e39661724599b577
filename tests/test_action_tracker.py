"""Tests for per-action loading and error state."""

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from onboarding.runtime.stepwise import ActionTracker, action_key
from onboarding.runtime.types import ActionState, ErrorInfo, LegacyMigrationAction

AUTH = LegacyMigrationAction.AUTHENTICATE_WITH_LEGACY_PROVIDER
LINK = LegacyMigrationAction.SEND_PASSWORDLESS_LINK


class TestActionKey:
    def test_enum_and_name_agree(self):
        assert action_key(AUTH) == "authenticate_with_legacy_provider"
        assert action_key("authenticate_with_legacy_provider") == action_key(AUTH)


class TestActionTracker:
    """Lifecycle of one action's state."""

    def test_unknown_action_reads_idle(self):
        tracker = ActionTracker()
        assert tracker.get(AUTH) == ActionState()
        assert tracker.is_loading(AUTH) is False
        assert tracker.get_error(AUTH) is None

    def test_start_clears_previous_error(self):
        tracker = ActionTracker()
        tracker.fail(AUTH, ErrorInfo("nope"))
        tracker.start(AUTH)
        assert tracker.is_loading(AUTH)
        assert tracker.get_error(AUTH) is None
        assert tracker.pending_action == "authenticate_with_legacy_provider"

    def test_fail_records_error_and_stops_loading(self):
        tracker = ActionTracker()
        tracker.start(AUTH)
        tracker.fail(AUTH, ErrorInfo("Incorrect password.", code="auth/wrong-password"))
        assert tracker.is_loading(AUTH) is False
        assert tracker.get_error(AUTH).code == "auth/wrong-password"
        assert tracker.pending_action is None

    def test_succeed_clears_error(self):
        tracker = ActionTracker()
        tracker.fail(AUTH, ErrorInfo("nope"))
        tracker.succeed(AUTH)
        assert tracker.get(AUTH) == ActionState()

    def test_actions_are_independent(self):
        """Failing one action leaves every other action's entry alone."""
        tracker = ActionTracker()
        tracker.fail(LINK, ErrorInfo("link failed"))
        tracker.start(AUTH)
        tracker.fail(AUTH, ErrorInfo("auth failed"))
        assert tracker.get_error(LINK).message == "link failed"
        tracker.succeed(AUTH)
        assert tracker.get_error(LINK).message == "link failed"

    def test_reset_and_contains(self):
        tracker = ActionTracker()
        tracker.fail(AUTH, ErrorInfo("nope"))
        assert AUTH in tracker
        assert "authenticate_with_legacy_provider" in tracker
        assert 42 not in tracker
        tracker.reset()
        assert AUTH not in tracker
        assert tracker.snapshot() == {}
