"""
onboarding.runtime.identity - Identity provider collaborators.

Package Structure:
    adapters.py - LegacyIdentityAdapter, PublicKeyIdentityAdapter, ProfilePublisher
    keys.py     - Public key canonicalization (hex / npub) and comparison
    errors.py   - ProviderError and normalize_error()
    stubs.py    - In-memory adapters for tests and stub mode
"""

from .adapters import (
    GeneratedKeypair,
    IdentityAdapters,
    LegacyIdentityAdapter,
    LinkProof,
    ProfilePublisher,
    PublicKeyIdentityAdapter,
)
from .errors import DEFAULT_ERROR_MESSAGE, PROVIDER_ERROR_MESSAGES, ProviderError, normalize_error
from .keys import (
    InvalidPublicKeyError,
    canonical_public_key,
    compare_public_keys,
    is_valid_public_key,
    npub_encode,
    truncate_public_key,
)
from .stubs import (
    RecordingProfilePublisher,
    StubLegacyIdentityProvider,
    StubPublicKeyIdentityProvider,
    build_stub_adapters,
    derive_public_key,
)

__all__ = [
    "GeneratedKeypair",
    "IdentityAdapters",
    "LegacyIdentityAdapter",
    "LinkProof",
    "ProfilePublisher",
    "PublicKeyIdentityAdapter",
    "DEFAULT_ERROR_MESSAGE",
    "PROVIDER_ERROR_MESSAGES",
    "ProviderError",
    "normalize_error",
    "InvalidPublicKeyError",
    "canonical_public_key",
    "compare_public_keys",
    "is_valid_public_key",
    "npub_encode",
    "truncate_public_key",
    "RecordingProfilePublisher",
    "StubLegacyIdentityProvider",
    "StubPublicKeyIdentityProvider",
    "build_stub_adapters",
    "derive_public_key",
]
