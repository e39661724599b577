"""Runtime configuration for the onboarding service.

Provides adapter mode, logging level, session limits and stub seed data.
Environment variables take precedence over YAML config.

Usage:
    from onboarding.config.runtime_config import get_adapter_mode, is_stub_mode

    if is_stub_mode():
        # Use the in-memory stub adapters
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None

DEFAULT_MAX_EVENTS = 500
DEFAULT_MAX_SESSIONS = 1000


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": 1,
        "adapters": {"mode": "stub"},
        "logging": {"level": "INFO"},
        "sessions": {
            "max_events": DEFAULT_MAX_EVENTS,
            "max_sessions": DEFAULT_MAX_SESSIONS,
        },
        "stub": {"legacy_accounts": []},
    }


def reload_config() -> None:
    """Drop the cached config so the next read goes back to disk (for testing)."""
    global _cached_config
    _cached_config = None


def _env_int(name: str, configured: Any, default: int) -> int:
    """Read a positive int from the environment, falling back to config then default."""
    raw = os.environ.get(name)
    if raw:
        try:
            value = int(raw)
            if value > 0:
                return value
        except ValueError:
            pass
        logger.warning("Ignoring %s=%r: expected a positive integer", name, raw)

    if isinstance(configured, int) and configured > 0:
        return configured
    return default


def get_adapter_mode() -> str:
    """Get the adapter mode.

    Environment variable precedence (highest to lowest):
    1. ONBOARDING_ADAPTER_MODE
    2. Config file value (adapters.mode)
    3. Default: "stub"
    """
    mode_value = os.environ.get("ONBOARDING_ADAPTER_MODE")
    if mode_value:
        return mode_value.lower()

    config = _load_config()
    return str(config.get("adapters", {}).get("mode", "stub")).lower()


def is_stub_mode() -> bool:
    """Check if the in-memory stub adapters should be used."""
    return get_adapter_mode() == "stub"


def get_log_level() -> str:
    """Get the log level name (ONBOARDING_LOG_LEVEL, then logging.level, then INFO)."""
    level = os.environ.get("ONBOARDING_LOG_LEVEL")
    if level:
        return level.upper()

    config = _load_config()
    return str(config.get("logging", {}).get("level", "INFO")).upper()


def get_max_events() -> int:
    """Get the per-session event log cap."""
    sessions = _load_config().get("sessions", {})
    return _env_int("ONBOARDING_MAX_EVENTS", sessions.get("max_events"), DEFAULT_MAX_EVENTS)


def get_max_sessions() -> int:
    """Get the API session store cap; the oldest session is evicted beyond it."""
    sessions = _load_config().get("sessions", {})
    return _env_int("ONBOARDING_MAX_SESSIONS", sessions.get("max_sessions"), DEFAULT_MAX_SESSIONS)


def get_stub_accounts() -> List[Dict[str, Any]]:
    """Get seeded legacy accounts for the stub adapters.

    Returns:
        List of account dicts with email, password, provider_user_id and
        linked_identities (each with secret or public_key, linked_at,
        profile_summary).
    """
    stub = _load_config().get("stub", {}) or {}
    return list(stub.get("legacy_accounts", []) or [])
