"""Per-provider credential resolution.

Resolution order is explicit per-call keys, then user-scoped stored keys,
then the remote side's system-level keys. The last tier is implicit: a
provider with no key of either kind is logged and the request goes out
anyway, trusting the remote collaborator to hold a system credential.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from .models import ChatSettings

if TYPE_CHECKING:
    from ..api.client import ChatApiClient

logger = logging.getLogger(__name__)


class CredentialSource(str, Enum):
    """Where a resolved credential came from."""

    EXPLICIT = "explicit"
    USER = "user"
    SYSTEM = "system"


class CredentialSet(BaseModel):
    """Provider name to secret, with the source of every entry.

    Never required to be complete; a provider without an entry falls back
    to system credentials held by the remote side.
    """

    keys: dict[str, str] = Field(default_factory=dict)
    sources: dict[str, CredentialSource] = Field(default_factory=dict)

    def get(self, provider: str) -> str | None:
        return self.keys.get(provider)

    def __contains__(self, provider: object) -> bool:
        return provider in self.keys

    def __len__(self) -> int:
        return len(self.keys)

    @property
    def providers(self) -> list[str]:
        return sorted(self.keys)

    @property
    def user_supplied(self) -> bool:
        """True when at least one entry came from the caller or user storage."""
        return any(
            source in (CredentialSource.EXPLICIT, CredentialSource.USER)
            for source in self.sources.values()
        )

    def source_of(self, provider: str) -> CredentialSource:
        return self.sources.get(provider, CredentialSource.SYSTEM)

    def masked(self) -> dict[str, str]:
        """Keys with all but the last four characters hidden, for display."""
        return {provider: mask_secret(value) for provider, value in self.keys.items()}


class CredentialValidation(BaseModel):
    """Outcome of ``validate``; advisory, never blocks a send."""

    valid: bool
    missing: list[str] = Field(default_factory=list)
    fallback: bool = Field(
        default=False,
        description="True when the request relies entirely on system credentials"
    )


def mask_secret(value: str | None) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:3]}...{value[-4:]}"


class CredentialFallbackPolicy:
    """The system-credential fallback rule, kept in one auditable place.

    A caller that supplied no credential of their own is in full fallback
    mode and is always valid. A caller that supplied at least one has an
    intentionally partial configuration, so providers they need but did
    not supply are reported as missing.
    """

    def evaluate(self, required: list[str], credentials: CredentialSet) -> CredentialValidation:
        if not credentials.user_supplied:
            return CredentialValidation(valid=True, fallback=True)

        missing = [provider for provider in required if provider not in credentials]
        return CredentialValidation(valid=not missing, missing=missing)


class CredentialStore:
    """User-scoped provider keys mirrored from the remote API.

    Keys live in memory only; ``refresh`` pulls them and ``set_key``
    writes through to the remote side first.
    """

    def __init__(self, keys: Mapping[str, str] | None = None):
        self._keys: dict[str, str] = {k: v for k, v in (keys or {}).items() if v}

    def get_all(self) -> dict[str, str]:
        return dict(self._keys)

    def replace(self, keys: Mapping[str, str]) -> None:
        self._keys = {k: v for k, v in keys.items() if v}

    def clear(self) -> None:
        self._keys.clear()

    async def refresh(self, client: "ChatApiClient") -> dict[str, str]:
        """Reload user keys from the remote API and return them."""
        keys = await client.get_api_keys()
        self.replace(keys)
        logger.debug("Loaded %d user credential(s)", len(self._keys))
        return self.get_all()

    async def set_key(self, client: "ChatApiClient", provider: str, value: str) -> None:
        """Store a user key remotely, then locally."""
        await client.set_api_key(provider, value)
        if value:
            self._keys[provider] = value
        else:
            self._keys.pop(provider, None)


class CredentialResolver:
    """Combine explicit, stored and system credentials.

    Hidden design decisions:
    - Precedence between credential tiers
    - How an incomplete configuration is judged (delegated to the policy)
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        policy: CredentialFallbackPolicy | None = None,
    ):
        self._store = store or CredentialStore()
        self._policy = policy or CredentialFallbackPolicy()

    @property
    def policy(self) -> CredentialFallbackPolicy:
        return self._policy

    def resolve_credentials(
        self,
        explicit_keys: Mapping[str, str] | None = None,
        required: list[str] | None = None,
    ) -> CredentialSet:
        """Build the credential set for one request.

        Args:
            explicit_keys: Per-call keys, highest precedence
            required: Providers the request needs; those with no key are
                logged as running on system credentials

        Returns:
            CredentialSet (possibly empty)
        """
        keys: dict[str, str] = {}
        sources: dict[str, CredentialSource] = {}

        for provider, value in self._store.get_all().items():
            keys[provider] = value
            sources[provider] = CredentialSource.USER

        for provider, value in (explicit_keys or {}).items():
            if value:
                keys[provider] = value
                sources[provider] = CredentialSource.EXPLICIT

        for provider in required or []:
            if provider not in keys:
                logger.info("No user credential for %s, relying on system credentials", provider)

        return CredentialSet(keys=keys, sources=sources)

    def validate(
        self,
        settings: ChatSettings,
        credentials: CredentialSet | Mapping[str, str],
    ) -> CredentialValidation:
        """Report providers the request needs but the caller did not supply."""
        return validate(settings, credentials, self._policy)


def validate(
    settings: ChatSettings,
    credentials: CredentialSet | Mapping[str, str],
    policy: CredentialFallbackPolicy | None = None,
) -> CredentialValidation:
    """Module-level form of ``CredentialResolver.validate``.

    A plain mapping counts as caller-supplied credentials.
    """
    if not isinstance(credentials, CredentialSet):
        credentials = CredentialSet(
            keys={k: v for k, v in credentials.items() if v},
            sources={k: CredentialSource.EXPLICIT for k, v in credentials.items() if v},
        )

    required = [settings.provider] if settings.provider else []
    return (policy or CredentialFallbackPolicy()).evaluate(required, credentials)
