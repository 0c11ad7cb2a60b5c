"""
Authentication provider abstraction.

Supports multiple authentication methods (password, OAuth1, OAuth2) behind
one closed set of provider kinds, so the session engine can treat a local
password check as just another provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderKind(str, Enum):
    OAUTH1 = "oauth1"
    OAUTH2 = "oauth2"
    PASSWORD = "password"


@dataclass
class NormalizedProfile:
    """Provider-independent view of a user's profile."""

    uid: str
    name: Optional[str] = None
    nickname: Optional[str] = None
    email: Optional[str] = None
    image_url: Optional[str] = None
    urls: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "name": self.name,
            "nickname": self.nickname,
            "email": self.email,
            "image_url": self.image_url,
            "urls": dict(self.urls),
        }


@dataclass
class AuthorizationRequest:
    """Where to send the visitor, plus anything needed again at callback time."""

    url: str
    handshake: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExchangeResult:
    """Outcome of a successful code exchange."""

    profile: NormalizedProfile
    token: Dict[str, Any] = field(default_factory=dict)

    @property
    def external_uid(self) -> str:
        return self.profile.uid


class AuthProvider(ABC):
    """
    Base authentication provider interface.

    All authentication methods (password, OAuth1, OAuth2) implement this interface.
    """

    kind: ProviderKind

    def __init__(self, name: str, scopes: Optional[List[str]] = None):
        self.name = name
        self.scopes = list(scopes or [])

    def requires_redirect(self) -> bool:
        """Check if this provider requires OAuth redirect flow."""
        return self.kind is not ProviderKind.PASSWORD

    async def aclose(self) -> None:
        """Release network resources. Providers without any do nothing."""
        return None


class OAuthProvider(AuthProvider):
    """Common interface of the OAuth1 and OAuth2 providers."""

    def __init__(self, name: str, client_id: str, client_secret: str, scopes: Optional[List[str]] = None):
        super().__init__(name, scopes)
        self.client_id = client_id
        self.client_secret = client_secret

    @abstractmethod
    async def get_login_url(self, state: str, redirect_uri: str) -> AuthorizationRequest:
        """
        Build the provider's authorization URL.

        Args:
            state: CSRF protection state token
            redirect_uri: Where the provider should send the visitor back

        Returns:
            AuthorizationRequest with the URL and any handshake data
        """

    @abstractmethod
    async def authenticate(
        self,
        code: str,
        redirect_uri: str,
        handshake: Dict[str, str],
        oauth_token: Optional[str] = None,
    ) -> ExchangeResult:
        """
        Exchange the callback credentials for a token and a profile.

        Args:
            code: Authorization code (OAuth2) or verifier (OAuth1)
            redirect_uri: The redirect URI used for the authorization request
            handshake: Data stored by get_login_url
            oauth_token: Request token echoed back by OAuth1 providers

        Raises:
            ProviderExchangeError: If the provider rejects the exchange
        """


__all__ = [
    "AuthProvider",
    "AuthorizationRequest",
    "ExchangeResult",
    "NormalizedProfile",
    "OAuthProvider",
    "ProviderKind",
]
