"""Flow vocabulary: flow kinds, steps, actions and branch outcomes.

Every flow has a closed set of steps and a closed set of named actions. The
YAML transition tables in ``onboarding/config/flows/`` are validated against
these enums when the registry loads, so a typo in a table is a load-time
error rather than a session that silently stalls.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Type


class FlowKind(str, Enum):
    """The three onboarding journeys."""

    SIGNUP = "signup"
    LEGACY_MIGRATION = "legacy-migration"
    DIRECT_LOGIN = "direct-login"


class Outcome(str, Enum):
    """Tagged result of an action, used as the branch key in transition tables."""

    SUCCESS = "success"
    SKIP = "skip"
    NO_LINKED_IDENTITIES = "no_linked_identities"
    ONE_OR_MORE_LINKED_IDENTITIES = "one_or_more_linked_identities"
    KEY_MATCHES = "key_matches"
    KEY_MISMATCH = "key_mismatch"
    ARTIST = "artist"
    LISTENER = "listener"
    IDENTITY_READY = "identity_ready"  # same step, identity now present
    DETOUR = "detour"


class AuthMethod(str, Enum):
    """Ways of proving control of a public-key identity."""

    EXTENSION = "extension"  # browser signer extension
    NSEC = "nsec"  # raw private key
    BUNKER = "bunker"  # remote signer URI


# =============================================================================
# Signup
# =============================================================================


class SignupStep(str, Enum):
    USER_TYPE = "user-type"
    ARTIST_TYPE = "artist-type"
    PROFILE_SETUP = "profile-setup"
    LEGACY_BACKUP = "legacy-backup"
    EMAIL_SENT = "email-sent"
    COMPLETE = "complete"


class SignupAction(str, Enum):
    SET_USER_TYPE = "set_user_type"
    SET_ARTIST_TYPE = "set_artist_type"
    GENERATE_IDENTITY = "generate_identity"
    IMPORT_IDENTITY = "import_identity"
    COMPLETE_PROFILE = "complete_profile"
    SETUP_LEGACY_BACKUP = "setup_legacy_backup"
    SKIP_LEGACY_BACKUP = "skip_legacy_backup"
    CONFIRM_LEGACY_BACKUP = "confirm_legacy_backup"


# =============================================================================
# Legacy migration
# =============================================================================


class LegacyMigrationStep(str, Enum):
    FIREBASE_AUTH = "firebase-auth"
    EMAIL_SENT = "email-sent"
    CHECKING_LINKS = "checking-links"
    LINKED_IDENTITY_AUTH = "linked-identity-auth"
    IDENTITY_MISMATCH = "identity-mismatch"
    PROFILE_SETUP = "profile-setup"
    LINKING = "linking"
    COMPLETE = "complete"


class LegacyMigrationAction(str, Enum):
    AUTHENTICATE_WITH_LEGACY_PROVIDER = "authenticate_with_legacy_provider"
    SEND_PASSWORDLESS_LINK = "send_passwordless_link"
    CONTINUE_WITH_EXISTING_SESSION = "continue_with_existing_session"
    CHECK_LINKED_IDENTITIES = "check_linked_identities"
    AUTHENTICATE_WITH_LINKED_IDENTITY = "authenticate_with_linked_identity"
    RESOLVE_MISMATCH_BY_RETRY = "resolve_mismatch_by_retry"
    RESOLVE_MISMATCH_BY_RELINKING = "resolve_mismatch_by_relinking"
    GENERATE_IDENTITY = "generate_identity"
    IMPORT_IDENTITY = "import_identity"
    COMPLETE_PROFILE = "complete_profile"
    LINK_IDENTITY = "link_identity"


# =============================================================================
# Direct login
# =============================================================================


class DirectLoginStep(str, Enum):
    AUTH = "auth"
    MIGRATION = "migration"
    COMPLETE = "complete"


class DirectLoginAction(str, Enum):
    AUTHENTICATE_WITH_PUBLIC_KEY = "authenticate_with_public_key"
    START_MIGRATION = "start_migration"
    FINISH_MIGRATION = "finish_migration"


STEP_ENUMS: Dict[FlowKind, Type[Enum]] = {
    FlowKind.SIGNUP: SignupStep,
    FlowKind.LEGACY_MIGRATION: LegacyMigrationStep,
    FlowKind.DIRECT_LOGIN: DirectLoginStep,
}

ACTION_ENUMS: Dict[FlowKind, Type[Enum]] = {
    FlowKind.SIGNUP: SignupAction,
    FlowKind.LEGACY_MIGRATION: LegacyMigrationAction,
    FlowKind.DIRECT_LOGIN: DirectLoginAction,
}
