"""Session types: per-action state, the session data bag, events and results.

SessionData is a frozen dataclass. ``merge()`` returns a new instance, which
makes a history snapshot nothing more than a reference to the instance that
was current before the merge.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ._ids import SessionId, _generate_event_id
from ._time import _datetime_to_iso, _utcnow


class SessionStatus(str, Enum):
    """Lifecycle status of a flow session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"  # branch-determination failure, fatal
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ErrorInfo:
    """A normalized, user-presentable action failure.

    Attributes:
        message: Message suitable for the step's error banner.
        code: Provider or engine error code, if one was available.
        cause: The original exception, kept for logging and debugging only.
    """

    message: str
    code: Optional[str] = None
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ActionState:
    """Loading/error state of one named action."""

    pending: bool = False
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class ProviderUser:
    """An authenticated legacy-provider account.

    Attributes:
        provider_user_id: Stable account id at the legacy provider.
        email: Account email, if the provider exposes one.
        id_token: Opaque token proving the session, used as linking proof.
    """

    provider_user_id: str
    email: Optional[str] = None
    id_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class LinkedIdentity:
    """A public key previously linked to a legacy account."""

    public_key: str
    linked_at: Optional[datetime] = None
    profile_summary: Mapping[str, str] = field(default_factory=dict)
    is_most_recent: bool = False


class IdentityOrigin(str, Enum):
    GENERATED = "generated"
    IMPORTED = "imported"


@dataclass(frozen=True)
class SessionIdentity:
    """The public-key identity this session will adopt.

    A single field with an ``origin`` tag keeps "generated" and "imported"
    mutually exclusive.
    """

    public_key: str
    origin: IdentityOrigin
    private_material: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class KeyMismatch:
    """Expected vs. actually authenticated key, both canonical hex."""

    expected_public_key: str
    actual_public_key: str


def order_linked_identities(identities: Iterable[LinkedIdentity]) -> Tuple[LinkedIdentity, ...]:
    """Order linked identities most recent first and flag the newest one.

    Entries without a ``linked_at`` sort last, keeping their relative order.
    """
    items = list(identities)
    dated = [i for i in items if i.linked_at is not None]
    undated = [i for i in items if i.linked_at is None]
    dated.sort(key=lambda i: i.linked_at, reverse=True)
    ordered = dated + undated
    return tuple(
        replace(identity, is_most_recent=(index == 0)) for index, identity in enumerate(ordered)
    )


@dataclass(frozen=True)
class SessionData:
    """Facts discovered during one flow session.

    Attributes:
        linked_identities: Keys linked to the legacy account, most recent first.
        identity: Generated or imported identity (never both).
        authenticated_public_key: Key proven by the latest public-key authentication.
        mismatch: Present only while an authenticated key differs from the expected one.
        linked_public_key: Key adopted by a successful linking action.
        legacy_provider_user: Authenticated legacy account, or None.
        profile_draft: Profile fields accumulated across steps.
        is_artist: Signup user type, once chosen.
        is_solo_artist: Signup artist type, once chosen.
        passwordless_email: Address a sign-in link was last sent to.
    """

    linked_identities: Tuple[LinkedIdentity, ...] = ()
    identity: Optional[SessionIdentity] = None
    authenticated_public_key: Optional[str] = None
    mismatch: Optional[KeyMismatch] = None
    linked_public_key: Optional[str] = None
    legacy_provider_user: Optional[ProviderUser] = None
    profile_draft: Mapping[str, Any] = field(default_factory=dict)
    is_artist: Optional[bool] = None
    is_solo_artist: Optional[bool] = None
    passwordless_email: Optional[str] = None

    @property
    def generated_identity(self) -> Optional[SessionIdentity]:
        if self.identity is not None and self.identity.origin == IdentityOrigin.GENERATED:
            return self.identity
        return None

    @property
    def imported_identity(self) -> Optional[SessionIdentity]:
        if self.identity is not None and self.identity.origin == IdentityOrigin.IMPORTED:
            return self.identity
        return None

    @property
    def expected_public_key(self) -> Optional[str]:
        return self.mismatch.expected_public_key if self.mismatch else None

    @property
    def actual_public_key(self) -> Optional[str]:
        return self.mismatch.actual_public_key if self.mismatch else None

    @property
    def most_recent_linked_identity(self) -> Optional[LinkedIdentity]:
        for identity in self.linked_identities:
            if identity.is_most_recent:
                return identity
        return self.linked_identities[0] if self.linked_identities else None

    def merge(self, facts: Mapping[str, Any]) -> "SessionData":
        """Return a copy with ``facts`` applied.

        Keys absent from ``facts`` are untouched. A key given as None clears
        that field. ``profile_draft`` is merged key by key.

        Raises:
            ValueError: On unknown fact names, or when a mismatch is recorded
                without a fresh ``authenticated_public_key`` in the same merge.
        """
        if not facts:
            return self

        unknown = set(facts) - _SESSION_DATA_FIELDS
        if unknown:
            raise ValueError(f"Unknown session facts: {sorted(unknown)}")

        if facts.get("mismatch") is not None and facts.get("authenticated_public_key") is None:
            raise ValueError("A key mismatch can only be recorded by an authentication action")

        changes: Dict[str, Any] = dict(facts)
        if "profile_draft" in changes:
            draft = dict(self.profile_draft)
            draft.update(changes["profile_draft"] or {})
            changes["profile_draft"] = draft
        if "linked_identities" in changes:
            changes["linked_identities"] = tuple(changes["linked_identities"] or ())

        return replace(self, **changes)


_SESSION_DATA_FIELDS = frozenset(f.name for f in fields(SessionData))


@dataclass(frozen=True)
class FlowResult:
    """Payload of the session completion callback."""

    success: bool
    error: Optional[str] = None
    public_key: Optional[str] = None


@dataclass
class SessionEvent:
    """A single observable change in a session's timeline.

    Attributes:
        session_id: The session this event belongs to.
        kind: Event type (action_started, action_succeeded, action_failed,
            action_ignored, step_changed, navigated_back, session_reset,
            session_completed, session_failed, session_cancelled).
        flow_kind: Flow kind value of the session.
        step: Current step after the change.
        action: Action the event concerns, if any.
        payload: Event-specific details.
        seq: Monotonic sequence number within the session.
    """

    session_id: SessionId
    kind: str
    flow_kind: str
    step: str
    action: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    seq: int = 0
    ts: datetime = field(default_factory=_utcnow)
    event_id: str = field(default_factory=_generate_event_id)


# =============================================================================
# Serialization (snapshots for observers and the HTTP surface)
# =============================================================================


def error_info_to_dict(error: Optional[ErrorInfo]) -> Optional[Dict[str, Any]]:
    if error is None:
        return None
    return {"message": error.message, "code": error.code}


def action_state_to_dict(state: ActionState) -> Dict[str, Any]:
    return {"pending": state.pending, "error": error_info_to_dict(state.error)}


def linked_identity_to_dict(identity: LinkedIdentity) -> Dict[str, Any]:
    return {
        "public_key": identity.public_key,
        "linked_at": _datetime_to_iso(identity.linked_at),
        "profile_summary": dict(identity.profile_summary),
        "is_most_recent": identity.is_most_recent,
    }


def session_data_to_dict(data: SessionData) -> Dict[str, Any]:
    """Convert session data to a dict with private material and tokens removed."""
    identity = None
    if data.identity is not None:
        identity = {
            "public_key": data.identity.public_key,
            "origin": data.identity.origin.value,
        }
    user = None
    if data.legacy_provider_user is not None:
        user = {
            "provider_user_id": data.legacy_provider_user.provider_user_id,
            "email": data.legacy_provider_user.email,
        }
    return {
        "linked_identities": [linked_identity_to_dict(i) for i in data.linked_identities],
        "identity": identity,
        "authenticated_public_key": data.authenticated_public_key,
        "expected_public_key": data.expected_public_key,
        "actual_public_key": data.actual_public_key,
        "linked_public_key": data.linked_public_key,
        "legacy_provider_user": user,
        "profile_draft": dict(data.profile_draft),
        "is_artist": data.is_artist,
        "is_solo_artist": data.is_solo_artist,
        "passwordless_email": data.passwordless_email,
    }


def flow_result_to_dict(result: Optional[FlowResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return {"success": result.success, "error": result.error, "public_key": result.public_key}


def session_event_to_dict(event: SessionEvent) -> Dict[str, Any]:
    return {
        "event_id": event.event_id,
        "seq": event.seq,
        "ts": _datetime_to_iso(event.ts),
        "session_id": event.session_id,
        "kind": event.kind,
        "flow_kind": event.flow_kind,
        "step": event.step,
        "action": event.action,
        "payload": event.payload,
    }
