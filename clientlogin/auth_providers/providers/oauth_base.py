"""
OAuth 2.0 providers.

OAuth2Provider implements the authorization code grant over httpx; the
concrete providers only differ in endpoints, default scopes, and how their
userinfo payload maps onto a NormalizedProfile.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from . import AuthorizationRequest, ExchangeResult, NormalizedProfile, OAuthProvider, ProviderKind
from ...exceptions import ProviderExchangeError

logger = logging.getLogger(__name__)


class OAuth2Provider(OAuthProvider):
    """
    Base class for OAuth 2.0 providers.

    Subclass this to implement specific providers:
    - GoogleOAuthProvider
    - GitHubOAuthProvider
    - FacebookOAuthProvider
    """

    kind = ProviderKind.OAUTH2

    authorize_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    default_scopes: List[str] = []
    scope_separator: str = " "

    def __init__(
        self,
        name: str,
        client_id: str,
        client_secret: str,
        scopes: Optional[List[str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize OAuth provider.

        Args:
            name: Canonical provider name
            client_id: OAuth client ID
            client_secret: OAuth client secret
            scopes: OAuth scopes to request (provider defaults when empty)
            http_client: Shared HTTP client, created lazily when omitted
        """
        super().__init__(name, client_id, client_secret, scopes or list(self.default_scopes))
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def get_login_url(self, state: str, redirect_uri: str) -> AuthorizationRequest:
        """
        Generate OAuth authorization URL.

        Args:
            state: CSRF protection state token
            redirect_uri: Callback URL

        Returns:
            AuthorizationRequest for the provider's consent page
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope_separator.join(self.scopes),
            "state": state,
        }
        return AuthorizationRequest(url=f"{self.authorize_url}?{urlencode(params)}")

    async def authenticate(
        self,
        code: str,
        redirect_uri: str,
        handshake: Dict[str, str],
        oauth_token: Optional[str] = None,
    ) -> ExchangeResult:
        if not code:
            raise ProviderExchangeError(self.name, detail="No authorization code in callback")
        try:
            token = await self.exchange_code(code, redirect_uri)
            userinfo = await self.get_userinfo(token["access_token"])
            profile = self.normalize_profile(userinfo)
        except ProviderExchangeError:
            raise
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise ProviderExchangeError(self.name, detail=f"{type(e).__name__}: {e}") from e

        logger.debug(f"Response from provider {self.name} received for uid {profile.uid}")
        return ExchangeResult(profile=profile, token=token)

    async def exchange_code(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        client = await self._get_client()
        resp = await client.post(
            self.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        token = resp.json()
        if "error" in token:
            raise ProviderExchangeError(
                self.name,
                detail=f"{token.get('error')}: {token.get('error_description', '')}",
            )
        if not token.get("access_token"):
            raise ProviderExchangeError(self.name, detail="Token response has no access_token")
        return token

    async def get_userinfo(self, access_token: str) -> Dict[str, Any]:
        client = await self._get_client()
        resp = await client.get(
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        resp.raise_for_status()
        return resp.json()

    def normalize_profile(self, userinfo: Dict[str, Any]) -> NormalizedProfile:
        uid = userinfo.get("sub") or userinfo.get("id")
        if not uid:
            raise ValueError("userinfo carries no user id")
        return NormalizedProfile(
            uid=str(uid),
            name=userinfo.get("name"),
            email=userinfo.get("email"),
        )


class GoogleOAuthProvider(OAuth2Provider):
    """Google OAuth 2.0 provider."""

    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    default_scopes = ["openid", "email", "profile"]

    def normalize_profile(self, userinfo: Dict[str, Any]) -> NormalizedProfile:
        profile = super().normalize_profile(userinfo)
        profile.nickname = userinfo.get("given_name")
        profile.image_url = userinfo.get("picture")
        return profile


class GitHubOAuthProvider(OAuth2Provider):
    """GitHub OAuth 2.0 provider."""

    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    userinfo_url = "https://api.github.com/user"
    default_scopes = ["user:email"]

    def normalize_profile(self, userinfo: Dict[str, Any]) -> NormalizedProfile:
        profile = super().normalize_profile(userinfo)
        profile.nickname = userinfo.get("login")
        profile.name = profile.name or profile.nickname
        profile.image_url = userinfo.get("avatar_url")
        if userinfo.get("html_url"):
            profile.urls["GitHub"] = userinfo["html_url"]
        return profile


class FacebookOAuthProvider(OAuth2Provider):
    """Facebook OAuth 2.0 provider."""

    authorize_url = "https://www.facebook.com/v19.0/dialog/oauth"
    token_url = "https://graph.facebook.com/v19.0/oauth/access_token"
    userinfo_url = "https://graph.facebook.com/v19.0/me?fields=id,name,email,picture,link"
    default_scopes = ["email", "public_profile"]
    scope_separator = ","

    def normalize_profile(self, userinfo: Dict[str, Any]) -> NormalizedProfile:
        profile = super().normalize_profile(userinfo)
        picture = userinfo.get("picture") or {}
        profile.image_url = (picture.get("data") or {}).get("url")
        if userinfo.get("link"):
            profile.urls["Facebook"] = userinfo["link"]
        return profile
