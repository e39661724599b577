"""
adapters.py - Abstract interfaces for the external identity providers.

This module defines the capability surfaces the flows call into:
- LegacyIdentityAdapter: email/password account system
- PublicKeyIdentityAdapter: public-key identity (signing, generation, links)
- ProfilePublisher: profile metadata publishing

Adapters own every network and protocol detail. Flows only see the typed
results below and the exceptions adapters raise (ProviderError, timeouts).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from onboarding.runtime.types import AuthMethod, LinkedIdentity, ProviderUser


@dataclass(frozen=True)
class GeneratedKeypair:
    """A freshly generated identity."""

    public_key: str
    private_material: str


@dataclass(frozen=True)
class LinkProof:
    """Evidence presented when linking a public key to a legacy account.

    Attributes:
        provider_token: Legacy provider session token (e.g. an ID token).
        public_key: The key being linked, canonical hex.
    """

    provider_token: Optional[str]
    public_key: str


class LegacyIdentityAdapter(ABC):
    """Legacy email-identity provider."""

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> ProviderUser:
        """Sign in with email and password."""
        ...

    @abstractmethod
    async def send_passwordless_link(self, email: str) -> None:
        """Send a sign-in link; following it establishes a provider session."""
        ...

    @abstractmethod
    async def current_session(self) -> Optional[ProviderUser]:
        """Return the signed-in account, or None."""
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        ...


class PublicKeyIdentityAdapter(ABC):
    """Public-key identity provider."""

    @abstractmethod
    async def authenticate(self, method: AuthMethod, secret: Optional[str] = None) -> str:
        """Prove control of a key and return its public key.

        Args:
            method: extension, nsec or bunker.
            secret: Private key for nsec, connection URI for bunker, unused
                for extension.

        Returns:
            The public key, in any supported encoding.
        """
        ...

    @abstractmethod
    async def generate_identity(self) -> GeneratedKeypair:
        ...

    @abstractmethod
    async def check_linked_identities(self, provider_user_id: str) -> List[LinkedIdentity]:
        """List keys linked to a legacy account, in any order."""
        ...

    @abstractmethod
    async def link_identity(self, provider_user_id: str, public_key: str, proof: LinkProof) -> None:
        """Link ``public_key`` to the legacy account, superseding earlier links."""
        ...


class ProfilePublisher(ABC):
    """Publishes profile metadata for a public key."""

    @abstractmethod
    async def publish_profile(self, public_key: str, fields: Mapping[str, Any]) -> None:
        ...


@dataclass
class IdentityAdapters:
    """The set of collaborators a flow session is bound to."""

    legacy: LegacyIdentityAdapter
    public_key: PublicKeyIdentityAdapter
    publisher: ProfilePublisher

    def describe(self) -> Dict[str, str]:
        return {
            "legacy": type(self.legacy).__name__,
            "public_key": type(self.public_key).__name__,
            "publisher": type(self.publisher).__name__,
        }
