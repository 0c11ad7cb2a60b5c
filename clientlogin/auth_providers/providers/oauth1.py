"""
OAuth 1.0a providers (Twitter).

OAuth1 has no state parameter, so the state token rides along in the
callback URL; the temporary request token secret is handed back to the
session engine as handshake data and returned to us at callback time.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth1Client

from . import AuthorizationRequest, ExchangeResult, NormalizedProfile, OAuthProvider, ProviderKind
from ...exceptions import ProviderExchangeError

logger = logging.getLogger(__name__)


class OAuth1Provider(OAuthProvider):
    """Base class for OAuth 1.0a providers."""

    kind = ProviderKind.OAUTH1

    request_token_url: str = ""
    authorize_url: str = ""
    access_token_url: str = ""
    userinfo_url: str = ""

    def __init__(
        self,
        name: str,
        client_id: str,
        client_secret: str,
        scopes: Optional[List[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(name, client_id, client_secret, scopes)
        self._transport = transport

    def _client(self, **kwargs) -> AsyncOAuth1Client:
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return AsyncOAuth1Client(self.client_id, self.client_secret, timeout=30.0, **kwargs)

    async def get_login_url(self, state: str, redirect_uri: str) -> AuthorizationRequest:
        separator = "&" if "?" in redirect_uri else "?"
        callback = f"{redirect_uri}{separator}{urlencode({'state': state})}"
        try:
            async with self._client(redirect_uri=callback) as client:
                request_token = await client.fetch_request_token(self.request_token_url)
                url = client.create_authorization_url(self.authorize_url, request_token["oauth_token"])
        except (AuthlibBaseError, httpx.HTTPError, KeyError, ValueError) as e:
            raise ProviderExchangeError(self.name, detail=f"Request token failed: {e}") from e

        return AuthorizationRequest(
            url=url,
            handshake={
                "oauth_token": request_token["oauth_token"],
                "oauth_token_secret": request_token["oauth_token_secret"],
            },
        )

    async def authenticate(
        self,
        code: str,
        redirect_uri: str,
        handshake: Dict[str, str],
        oauth_token: Optional[str] = None,
    ) -> ExchangeResult:
        request_token = handshake.get("oauth_token")
        if not code or not request_token:
            raise ProviderExchangeError(self.name, detail="Callback is missing the verifier or request token")
        if oauth_token and oauth_token != request_token:
            raise ProviderExchangeError(self.name, detail="Callback request token does not match")

        try:
            async with self._client(
                token=request_token,
                token_secret=handshake.get("oauth_token_secret"),
            ) as client:
                token = await client.fetch_access_token(self.access_token_url, verifier=code)
                resp = await client.get(self.userinfo_url)
                resp.raise_for_status()
                profile = self.normalize_profile(resp.json())
        except (AuthlibBaseError, httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise ProviderExchangeError(self.name, detail=f"{type(e).__name__}: {e}") from e

        logger.debug(f"Response from provider {self.name} received for uid {profile.uid}")
        return ExchangeResult(profile=profile, token=dict(token))

    def normalize_profile(self, userinfo: dict) -> NormalizedProfile:
        return NormalizedProfile(uid=str(userinfo["id"]), name=userinfo.get("name"))


class TwitterOAuthProvider(OAuth1Provider):
    """Twitter OAuth 1.0a provider."""

    request_token_url = "https://api.twitter.com/oauth/request_token"
    authorize_url = "https://api.twitter.com/oauth/authenticate"
    access_token_url = "https://api.twitter.com/oauth/access_token"
    userinfo_url = "https://api.twitter.com/1.1/account/verify_credentials.json?include_email=true"

    def normalize_profile(self, userinfo: dict) -> NormalizedProfile:
        profile = super().normalize_profile(userinfo)
        profile.nickname = userinfo.get("screen_name")
        profile.email = userinfo.get("email")
        profile.image_url = userinfo.get("profile_image_url_https")
        if profile.nickname:
            profile.urls["Twitter"] = f"https://twitter.com/{profile.nickname}"
        return profile
