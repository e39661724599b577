"""
Test fixtures for the onboarding flow engine.

Provides stub identity adapters seeded with a listener account (no linked
keys) and an artist account (two linked keys), plus an API client bound to
those adapters.
"""

import sys
from pathlib import Path

_tests_dir = Path(__file__).parent
_repo_root = _tests_dir.parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi.testclient import TestClient

from onboarding.config.flow_registry import FlowRegistry
from onboarding.config.runtime_config import reload_config
from onboarding.runtime.identity import build_stub_adapters
from stub_accounts import EXTENSION_SECRET, STUB_ACCOUNTS

_ENV_VARS = (
    "ONBOARDING_ADAPTER_MODE",
    "ONBOARDING_LOG_LEVEL",
    "ONBOARDING_MAX_EVENTS",
    "ONBOARDING_MAX_SESSIONS",
)


# ============================================================================
# Configuration isolation
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Clear env overrides and cached config/registry around every test."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    reload_config()
    FlowRegistry.reset()
    yield
    reload_config()
    FlowRegistry.reset()


# ============================================================================
# Adapters and API
# ============================================================================


@pytest.fixture
def adapters():
    """Seeded stub adapters with a signer extension available."""
    return build_stub_adapters(STUB_ACCOUNTS, extension_secret=EXTENSION_SECRET)


@pytest.fixture
def bare_adapters():
    """Seeded stub adapters without a signer extension."""
    return build_stub_adapters(STUB_ACCOUNTS)


@pytest.fixture
def api_client(adapters):
    """TestClient for an app whose sessions all share ``adapters``."""
    from onboarding.api import create_app

    return TestClient(create_app(adapters=adapters))
