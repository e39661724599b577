"""Tests for sanitized auth logging and provider error normalization."""

import asyncio
import logging
import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from onboarding.runtime.flows import SignupFlow
from onboarding.runtime.auth_logging import log_auth_error, log_auth_event, sanitize_log_context
from onboarding.runtime.identity import DEFAULT_ERROR_MESSAGE, ProviderError, normalize_error

KEY = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"


class TestSanitizeLogContext:
    def test_email_reduced_to_domain(self):
        assert sanitize_log_context(email="someone@example.com") == {"email_domain": "example.com"}
        assert sanitize_log_context(email="no-at-sign") == {"email_domain": "unknown"}

    def test_secrets_dropped(self):
        context = sanitize_log_context(password="pw", secret="s", id_token="t", private_material="m", step="x")
        assert context == {"step": "x"}

    def test_keys_truncated(self):
        context = sanitize_log_context(public_key=KEY, expected_public_key=KEY)
        assert context == {"public_key": "7e7e9c42...86addf4e", "expected_public_key": "7e7e9c42...86addf4e"}

    def test_non_scalar_values_dropped(self):
        assert sanitize_log_context(fields={"name": "x"}, count=2, missing=None) == {"count": 2}


class TestLogAuthEvents:
    def test_event_logged_without_raw_email(self, caplog):
        with caplog.at_level(logging.INFO, logger="onboarding.runtime.auth_logging"):
            log_auth_event("legacy_sign_in", email="someone@example.com", password="hunter2")
        assert "example.com" in caplog.text
        assert "someone@" not in caplog.text
        assert "hunter2" not in caplog.text

    def test_link_failure_is_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="onboarding.runtime.auth_logging"):
            log_auth_error("link_identity", ProviderError("link/x", "boom"))
            log_auth_error("legacy_sign_in", ProviderError("auth/x", "bad"))
        assert [r.levelno for r in caplog.records] == [logging.WARNING, logging.ERROR]

    def test_profile_publish_failure_is_warning(self, caplog, adapters):
        flow = SignupFlow(adapters)
        adapters.publisher.fail_next("publish_profile")

        async def scenario():
            await flow.set_user_type(False)
            await flow.complete_profile({"name": "L"})

        with caplog.at_level(logging.INFO, logger="onboarding.runtime.auth_logging"):
            asyncio.run(scenario())
        failures = [
            r for r in caplog.records
            if r.name == "onboarding.runtime.auth_logging" and "failed" in r.getMessage()
        ]
        assert [r.levelno for r in failures] == [logging.WARNING]
        assert "complete_profile" in failures[0].getMessage()


class TestNormalizeError:
    def test_known_code_mapped(self):
        error = normalize_error(ProviderError("auth/too-many-requests", "raw"))
        assert error.message == "Too many failed attempts. Please try again later."
        assert error.code == "auth/too-many-requests"

    def test_unknown_code_keeps_message(self):
        error = normalize_error(ProviderError("link/x", "Linking failed"))
        assert error.message == "Linking failed"
        assert error.code == "link/x"

    def test_timeout(self):
        error = normalize_error(asyncio.TimeoutError())
        assert error.code == "timeout"

    def test_plain_exception(self):
        assert normalize_error(RuntimeError("kaput")).message == "kaput"
        assert normalize_error(RuntimeError()).message == DEFAULT_ERROR_MESSAGE
        assert normalize_error(RuntimeError()).code is None

    def test_cause_kept(self):
        exc = ValueError("x")
        assert normalize_error(exc).cause is exc
