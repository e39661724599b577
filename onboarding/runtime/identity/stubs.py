"""
stubs.py - In-memory identity adapters for tests and local runs.

The stubs keep every account, link and published profile in memory. They
support seeded accounts, deterministic key derivation, failure injection and
call recording, and can hold a call open until a test releases it.

Public keys for secrets are derived as sha256(secret), so a given secret
always authenticates as the same key.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from onboarding.runtime.types import (
    AuthMethod,
    LinkedIdentity,
    ProviderUser,
    _iso_to_datetime,
    _utcnow,
)

from .adapters import (
    GeneratedKeypair,
    IdentityAdapters,
    LegacyIdentityAdapter,
    LinkProof,
    ProfilePublisher,
    PublicKeyIdentityAdapter,
)
from .errors import ProviderError
from .keys import canonical_public_key

logger = logging.getLogger(__name__)


def derive_public_key(secret: str) -> str:
    """Deterministic stand-in for key derivation: sha256 of the secret, hex."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class _StubAdapter:
    """Call recording, failure injection and call gating shared by the stubs."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self._failures: Dict[str, List[BaseException]] = {}
        self._gates: Dict[str, asyncio.Event] = {}

    def fail_next(self, operation: str, error: Optional[BaseException] = None) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        if error is None:
            error = ProviderError("stub/failure", f"Injected failure in {operation}")
        self._failures.setdefault(operation, []).append(error)

    def hold(self, operation: str) -> asyncio.Event:
        """Block the next call to ``operation`` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def call_count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def _enter(self, operation: str, *recorded: Any) -> None:
        self.calls.append((operation,) + recorded)
        gate = self._gates.pop(operation, None)
        if gate is not None:
            await gate.wait()
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)


class StubLegacyIdentityProvider(_StubAdapter, LegacyIdentityAdapter):
    """Email/password provider backed by a dict of accounts."""

    def __init__(self, accounts: Optional[Iterable[Mapping[str, Any]]] = None):
        super().__init__()
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._session: Optional[ProviderUser] = None
        self.sent_links: List[str] = []
        for account in accounts or ():
            self.add_account(account["email"], account.get("password", ""), account.get("provider_user_id"))

    def add_account(self, email: str, password: str, provider_user_id: Optional[str] = None) -> str:
        key = email.strip().lower()
        user_id = provider_user_id or "legacy-" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        self._accounts[key] = {"email": email, "password": password, "provider_user_id": user_id}
        return user_id

    def _user_for(self, email: str) -> ProviderUser:
        account = self._accounts[email.strip().lower()]
        return ProviderUser(
            provider_user_id=account["provider_user_id"],
            email=account["email"],
            id_token=f"stub-token-{account['provider_user_id']}",
        )

    @staticmethod
    def _check_email(email: str) -> None:
        if not email or not email.strip():
            raise ProviderError("auth/missing-email", "Email is required")
        if "@" not in email:
            raise ProviderError("auth/invalid-email", "Email is badly formatted")

    async def authenticate(self, email: str, password: str) -> ProviderUser:
        await self._enter("authenticate", email)
        self._check_email(email)
        if not password:
            raise ProviderError("auth/missing-password", "Password is required")

        account = self._accounts.get(email.strip().lower())
        if account is None:
            raise ProviderError("auth/user-not-found", "There is no user record for this email")
        if account["password"] != password:
            raise ProviderError("auth/wrong-password", "The password is invalid")

        self._session = self._user_for(email)
        return self._session

    async def send_passwordless_link(self, email: str) -> None:
        await self._enter("send_passwordless_link", email)
        self._check_email(email)
        self.sent_links.append(email)

    def complete_passwordless_sign_in(self, email: str) -> ProviderUser:
        """Simulate the user following the emailed link.

        Creates the account when the address is new, as the real provider does.
        """
        if email not in self.sent_links:
            raise ProviderError("auth/invalid-action-code", "No sign-in link was sent to this address")
        if email.strip().lower() not in self._accounts:
            self.add_account(email, "")
        self._session = self._user_for(email)
        return self._session

    async def current_session(self) -> Optional[ProviderUser]:
        await self._enter("current_session")
        return self._session

    async def sign_out(self) -> None:
        await self._enter("sign_out")
        self._session = None


class StubPublicKeyIdentityProvider(_StubAdapter, PublicKeyIdentityAdapter):
    """Public-key provider with an in-memory link table.

    Attributes:
        extension_secret: Secret held by the simulated browser extension;
            extension sign-in fails while it is None.
    """

    def __init__(
        self,
        links: Optional[Mapping[str, Iterable[LinkedIdentity]]] = None,
        extension_secret: Optional[str] = None,
    ):
        super().__init__()
        self.extension_secret = extension_secret
        self._links: Dict[str, List[LinkedIdentity]] = {
            user_id: list(identities) for user_id, identities in (links or {}).items()
        }

    async def authenticate(self, method: AuthMethod, secret: Optional[str] = None) -> str:
        method = AuthMethod(method)
        await self._enter("authenticate", method.value)

        if method == AuthMethod.EXTENSION:
            if self.extension_secret is None:
                raise ProviderError("extension-unavailable", "No signer extension found")
            return derive_public_key(self.extension_secret)

        if not secret:
            raise ProviderError("missing-secret", f"A secret is required for {method.value} sign-in")
        if method == AuthMethod.BUNKER and not secret.startswith("bunker://"):
            raise ProviderError("invalid-bunker-uri", "Remote signer URI must start with bunker://")
        return derive_public_key(secret)

    async def generate_identity(self) -> GeneratedKeypair:
        await self._enter("generate_identity")
        secret = secrets.token_hex(32)
        return GeneratedKeypair(public_key=derive_public_key(secret), private_material=secret)

    async def check_linked_identities(self, provider_user_id: str) -> List[LinkedIdentity]:
        await self._enter("check_linked_identities", provider_user_id)
        return list(self._links.get(provider_user_id, []))

    async def link_identity(self, provider_user_id: str, public_key: str, proof: LinkProof) -> None:
        await self._enter("link_identity", provider_user_id, public_key)
        if not proof.provider_token:
            raise ProviderError("link/missing-proof", "A legacy session token is required to link")

        key = canonical_public_key(public_key)
        existing = [i for i in self._links.get(provider_user_id, []) if i.public_key != key]
        existing.append(LinkedIdentity(public_key=key, linked_at=_utcnow()))
        self._links[provider_user_id] = existing

    def linked_keys(self, provider_user_id: str) -> List[str]:
        return [i.public_key for i in self._links.get(provider_user_id, [])]


class RecordingProfilePublisher(_StubAdapter, ProfilePublisher):
    """Keeps every published profile in ``published``."""

    def __init__(self) -> None:
        super().__init__()
        self.published: List[Tuple[str, Dict[str, Any]]] = []

    async def publish_profile(self, public_key: str, fields: Mapping[str, Any]) -> None:
        await self._enter("publish_profile", public_key)
        self.published.append((public_key, dict(fields)))


def build_stub_adapters(
    accounts: Optional[Iterable[Mapping[str, Any]]] = None,
    extension_secret: Optional[str] = None,
) -> IdentityAdapters:
    """Build a consistent set of stub adapters from seed accounts.

    Args:
        accounts: Account dicts as found under ``stub.legacy_accounts`` in
            runtime.yaml. Each linked identity gives either ``public_key`` or
            ``secret``.
        extension_secret: Secret for the simulated signer extension.
    """
    accounts = list(accounts or [])
    legacy = StubLegacyIdentityProvider(accounts)

    links: Dict[str, List[LinkedIdentity]] = {}
    for account in accounts:
        user_id = legacy._user_for(account["email"]).provider_user_id
        identities = []
        for entry in account.get("linked_identities") or []:
            if entry.get("public_key"):
                key = canonical_public_key(entry["public_key"])
            else:
                key = derive_public_key(entry["secret"])
            identities.append(
                LinkedIdentity(
                    public_key=key,
                    linked_at=_iso_to_datetime(entry.get("linked_at")),
                    profile_summary=dict(entry.get("profile_summary") or {}),
                )
            )
        links[user_id] = identities

    logger.debug("Built stub adapters with %d seeded accounts", len(accounts))
    return IdentityAdapters(
        legacy=legacy,
        public_key=StubPublicKeyIdentityProvider(links, extension_secret=extension_secret),
        publisher=RecordingProfilePublisher(),
    )
