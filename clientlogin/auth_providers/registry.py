"""
Provider registry: configured providers, resolved by name.

The registry is built once from configuration. Every configured name must
belong to the built-in catalog, so a typo in the configuration fails at
startup instead of on the first login attempt.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..core.config import Settings
from ..exceptions import ConfigurationError, ProviderExchangeError, UnknownProviderError
from .providers import AuthorizationRequest, AuthProvider, ExchangeResult, OAuthProvider, ProviderKind
from .providers.oauth1 import TwitterOAuthProvider
from .providers.oauth_base import FacebookOAuthProvider, GitHubOAuthProvider, GoogleOAuthProvider
from .providers.password import PASSWORD_PROVIDER, PasswordAuthProvider

logger = logging.getLogger(__name__)


# Canonical provider name -> (kind, factory)
PROVIDER_CATALOG: Dict[str, tuple] = {
    PASSWORD_PROVIDER: (ProviderKind.PASSWORD, PasswordAuthProvider),
    "Google": (ProviderKind.OAUTH2, GoogleOAuthProvider),
    "Facebook": (ProviderKind.OAUTH2, FacebookOAuthProvider),
    "GitHub": (ProviderKind.OAUTH2, GitHubOAuthProvider),
    "Twitter": (ProviderKind.OAUTH1, TwitterOAuthProvider),
}


@dataclass
class ProviderConfig:
    name: str
    kind: ProviderKind
    enabled: bool
    client_id: str = ""
    client_secret: str = ""
    scopes: List[str] = field(default_factory=list)
    redirect_uri: str = ""


@dataclass
class ProviderEntry:
    config: ProviderConfig
    handle: AuthProvider

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def kind(self) -> ProviderKind:
        return self.config.kind


def canonical_provider_name(name: str) -> Optional[str]:
    """Map any capitalisation of a catalog name to the catalog spelling."""
    lowered = name.strip().lower()
    for canonical in PROVIDER_CATALOG:
        if canonical.lower() == lowered:
            return canonical
    return None


class ProviderRegistry:
    """Holds one entry per configured provider."""

    def __init__(self, entries: List[ProviderEntry]):
        self._entries: Dict[str, ProviderEntry] = {entry.name: entry for entry in entries}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        factories: Optional[Dict[str, Callable[..., AuthProvider]]] = None,
    ) -> "ProviderRegistry":
        """
        Build the registry from configuration.

        Args:
            settings: Application settings
            factories: Override the catalog factory for some providers

        Raises:
            ConfigurationError: Unknown provider name, or an enabled OAuth
                provider without client credentials
        """
        factories = factories or {}
        entries: List[ProviderEntry] = []
        seen: Dict[str, str] = {}

        for raw_name, values in settings.PROVIDERS.items():
            name = canonical_provider_name(raw_name)
            if name is None:
                raise ConfigurationError(
                    f"Unknown provider '{raw_name}' in configuration; "
                    f"known providers are {', '.join(PROVIDER_CATALOG)}"
                )
            if name in seen:
                raise ConfigurationError(f"Provider '{name}' configured twice ('{seen[name]}' and '{raw_name}')")
            seen[name] = raw_name

            kind, default_factory = PROVIDER_CATALOG[name]
            factory = factories.get(name, default_factory)
            config = ProviderConfig(
                name=name,
                kind=kind,
                enabled=values.enabled,
                client_id=values.resolved_client_id(),
                client_secret=values.resolved_client_secret(),
                scopes=values.resolved_scopes(),
                redirect_uri=cls.build_redirect_uri(settings.SITE_ROOT, settings.BASEPATH, name),
            )

            if kind is ProviderKind.PASSWORD:
                handle = factory(name=name, rounds=settings.PASSWORD_BCRYPT_ROUNDS)
            else:
                if config.enabled and not (config.client_id and config.client_secret):
                    raise ConfigurationError(f"Provider '{name}' is enabled but has no client id/secret")
                handle = factory(
                    name=name,
                    client_id=config.client_id,
                    client_secret=config.client_secret,
                    scopes=config.scopes,
                )
                config.scopes = list(handle.scopes)

            entries.append(ProviderEntry(config=config, handle=handle))
            logger.debug(f"Configured provider {name} ({kind.value}, enabled={config.enabled})")

        return cls(entries)

    @staticmethod
    def build_redirect_uri(site_root: str, basepath: str, name: str) -> str:
        return f"{site_root.rstrip('/')}/{basepath.strip('/')}/endpoint?provider={name}"

    def normalize(self, name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        lowered = name.strip().lower()
        for known in self._entries:
            if known.lower() == lowered:
                return known
        return None

    def resolve(self, name: Optional[str]) -> ProviderEntry:
        canonical = self.normalize(name)
        entry = self._entries.get(canonical) if canonical else None
        if entry is None or not entry.config.enabled:
            raise UnknownProviderError(detail=f"Provider '{name}' is unknown or disabled")
        return entry

    def redirect_uri(self, name: str) -> str:
        return self.resolve(name).config.redirect_uri

    async def build_authorization_url(self, name: str, state: str) -> AuthorizationRequest:
        entry = self.resolve(name)
        if not isinstance(entry.handle, OAuthProvider):
            raise UnknownProviderError(detail=f"Provider '{entry.name}' does not use redirects")
        return await entry.handle.get_login_url(state, entry.config.redirect_uri)

    async def exchange_code(
        self,
        name: str,
        code: Optional[str],
        handshake: Optional[Dict[str, str]] = None,
        oauth_token: Optional[str] = None,
    ) -> ExchangeResult:
        entry = self.resolve(name)
        if not isinstance(entry.handle, OAuthProvider):
            raise UnknownProviderError(detail=f"Provider '{entry.name}' does not use redirects")
        try:
            return await entry.handle.authenticate(
                code or "",
                entry.config.redirect_uri,
                handshake or {},
                oauth_token=oauth_token,
            )
        except ProviderExchangeError:
            raise
        except Exception as e:
            raise ProviderExchangeError(entry.name, detail=f"{type(e).__name__}: {e}") from e

    def password_provider(self) -> PasswordAuthProvider:
        entry = self.resolve(PASSWORD_PROVIDER)
        return entry.handle

    def available(self) -> List[ProviderConfig]:
        return [entry.config for entry in self._entries.values() if entry.config.enabled]

    async def aclose(self) -> None:
        for entry in self._entries.values():
            await entry.handle.aclose()
