"""
auth_logging.py - Sanitized logging for identity operations

Identity facts never reach a log record raw: emails are reduced to their
domain, public keys are truncated, secrets and tokens are dropped, and only
scalar values are kept.

Usage:
    from onboarding.runtime.auth_logging import log_auth_event, log_auth_error

    log_auth_event("legacy_sign_in", email=user.email, provider_user_id=user.provider_user_id)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from onboarding.runtime.identity.keys import truncate_public_key

logger = logging.getLogger(__name__)

_SECRET_KEYS = frozenset({
    "password",
    "secret",
    "private_material",
    "id_token",
    "provider_token",
    "token",
})

# Actions whose failure does not block authentication
_WARNING_OPERATIONS = frozenset({"link_identity", "complete_profile"})


def sanitize_log_context(**context: Any) -> Dict[str, Any]:
    """Return a copy of ``context`` that is safe to log."""
    sanitized: Dict[str, Any] = {}
    for key, value in context.items():
        if value is None or key in _SECRET_KEYS:
            continue
        if key == "email":
            parts = str(value).split("@")
            sanitized["email_domain"] = parts[1] if len(parts) > 1 else "unknown"
        elif key.endswith("public_key") or key == "pubkey":
            sanitized[key] = truncate_public_key(str(value))
        elif key == "error":
            sanitized[key] = value if isinstance(value, str) else type(value).__name__
        elif isinstance(value, (str, int, float, bool)):
            sanitized[key] = value
    return sanitized


def log_auth_event(operation: str, level: int = logging.INFO, **context: Any) -> None:
    logger.log(level, "Authentication %s: %s", operation, sanitize_log_context(**context))


def log_auth_error(operation: str, error: Optional[BaseException] = None, **context: Any) -> None:
    """Log a failed identity operation at warning or error level."""
    if error is not None:
        context["error"] = str(error) or type(error).__name__
    level = logging.WARNING if operation in _WARNING_OPERATIONS else logging.ERROR
    logger.log(level, "Authentication %s failed: %s", operation, sanitize_log_context(**context))
