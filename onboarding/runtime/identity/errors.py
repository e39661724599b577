"""
errors.py - Adapter error type and normalization into ErrorInfo

Adapters raise ProviderError (or let timeouts and other exceptions escape).
The orchestrator never shows a raw exception to a caller: every failure of an
action handler passes through normalize_error() and is stored as ErrorInfo
under that action's name.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from onboarding.runtime.types import ErrorInfo

DEFAULT_ERROR_MESSAGE = "An error occurred. Please try again."
TIMEOUT_ERROR_MESSAGE = "The request timed out. Please try again."

# Legacy provider error codes mapped to user-facing messages
PROVIDER_ERROR_MESSAGES: Dict[str, str] = {
    "auth/user-not-found": "No account found with this email address.",
    "auth/wrong-password": "Incorrect password.",
    "auth/invalid-email": "Invalid email address.",
    "auth/too-many-requests": "Too many failed attempts. Please try again later.",
    "auth/user-disabled": "This account has been disabled.",
    "auth/operation-not-allowed": "This operation is not allowed.",
    "auth/weak-password": "Password is too weak. Please choose a stronger password.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/invalid-credential": "Invalid email or password. Please check your credentials.",
    "auth/invalid-login-credentials": "Invalid email or password. Please check your credentials.",
    "auth/account-exists-with-different-credential": "An account already exists with a different sign-in method.",
    "auth/network-request-failed": "Network error. Please check your internet connection.",
    "auth/popup-closed-by-user": "Authentication popup was closed before completion.",
    "auth/requires-recent-login": "This operation requires recent authentication. Please sign in again.",
    "auth/missing-password": "Please enter your password.",
    "auth/missing-email": "Please enter your email address.",
}


class ProviderError(Exception):
    """Raised by identity adapters for any provider-side failure.

    Attributes:
        code: Provider error code (e.g. "auth/wrong-password"), if any.
        message: Provider message; may be replaced by a friendlier one.
    """

    def __init__(self, code: Optional[str], message: str = ""):
        self.code = code
        self.message = message
        super().__init__(message or code or DEFAULT_ERROR_MESSAGE)


def normalize_error(exc: BaseException, default_message: str = DEFAULT_ERROR_MESSAGE) -> ErrorInfo:
    """Convert any exception raised by an action handler into ErrorInfo.

    Known provider codes get their mapped message, timeouts get a timeout
    message, everything else keeps its own message (or the default).
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorInfo(message=TIMEOUT_ERROR_MESSAGE, code="timeout", cause=exc)

    code = getattr(exc, "code", None)
    if not isinstance(code, str):
        code = None

    if code and code in PROVIDER_ERROR_MESSAGES:
        return ErrorInfo(message=PROVIDER_ERROR_MESSAGES[code], code=code, cause=exc)

    message = getattr(exc, "message", None) or str(exc) or default_message
    return ErrorInfo(message=message, code=code, cause=exc)
