"""Tests for provider configuration and lookup."""

from functools import partial

import httpx
import pytest

from clientlogin.auth_providers.providers import ProviderKind
from clientlogin.auth_providers.providers.oauth_base import GitHubOAuthProvider
from clientlogin.auth_providers.providers.password import PasswordAuthProvider
from clientlogin.auth_providers.registry import ProviderRegistry, canonical_provider_name
from clientlogin.core.config import Settings
from clientlogin.exceptions import ConfigurationError, ProviderExchangeError, UnknownProviderError


def _settings(**providers):
    return Settings(SITE_ROOT="https://example.test/", BASEPATH="/authenticate/", PROVIDERS=providers)


class TestFromSettings:
    def test_unknown_provider_fails_at_startup(self):
        with pytest.raises(ConfigurationError, match="MySpace"):
            ProviderRegistry.from_settings(_settings(MySpace={"enabled": True}))

    def test_enabled_oauth_provider_needs_credentials(self):
        with pytest.raises(ConfigurationError, match="Google"):
            ProviderRegistry.from_settings(_settings(Google={"enabled": True, "clientId": "only-id"}))

    def test_disabled_provider_may_lack_credentials(self):
        registry = ProviderRegistry.from_settings(_settings(Google={"enabled": False}))

        assert registry.normalize("google") == "Google"
        assert registry.available() == []

    def test_same_provider_twice(self):
        with pytest.raises(ConfigurationError, match="twice"):
            ProviderRegistry.from_settings(_settings(GitHub={}, github={}))

    def test_legacy_keys_and_scope_string(self):
        registry = ProviderRegistry.from_settings(
            _settings(Google={"enabled": True, "keys": {"id": "g-id", "secret": "g-secret"}, "scope": "openid email"})
        )

        config = registry.resolve("google").config
        assert config.client_id == "g-id"
        assert config.client_secret == "g-secret"
        assert config.scopes == ["openid", "email"]

    def test_default_scopes(self):
        registry = ProviderRegistry.from_settings(
            _settings(GitHub={"enabled": True, "clientId": "id", "clientSecret": "secret"})
        )

        assert registry.resolve("GitHub").config.scopes == ["user:email"]

    def test_redirect_uri(self):
        registry = ProviderRegistry.from_settings(_settings(Password={"enabled": True}))

        assert registry.redirect_uri("password") == "https://example.test/authenticate/endpoint?provider=Password"

    def test_password_provider_uses_configured_rounds(self):
        registry = ProviderRegistry.from_settings(_settings(Password={"enabled": True}))

        provider = registry.password_provider()
        assert isinstance(provider, PasswordAuthProvider)
        assert provider.kind is ProviderKind.PASSWORD
        assert provider.requires_redirect() is False


class TestResolve:
    @pytest.mark.parametrize("name", ["GitHub", "github", "GITHUB", " GitHub "])
    def test_case_insensitive(self, registry, name):
        assert registry.resolve(name).name == "GitHub"

    @pytest.mark.parametrize("name", [None, "", "MySpace", "Google"])
    def test_unknown_or_disabled(self, registry, name):
        with pytest.raises(UnknownProviderError):
            registry.resolve(name)

    def test_canonical_provider_name(self):
        assert canonical_provider_name("facebook") == "Facebook"
        assert canonical_provider_name("myspace") is None

    def test_available(self, registry):
        assert {config.name for config in registry.available()} == {"Password", "GitHub"}


class TestExchange:
    @pytest.mark.asyncio
    async def test_authorization_url_carries_state(self, registry):
        request = await registry.build_authorization_url("GitHub", "state-123")

        assert "state=state-123" in request.url
        assert request.handshake == {}

    @pytest.mark.asyncio
    async def test_password_provider_has_no_authorization_url(self, registry):
        with pytest.raises(UnknownProviderError):
            await registry.build_authorization_url("Password", "state-123")

    @pytest.mark.asyncio
    async def test_exchange_returns_normalized_profile(self, registry):
        result = await registry.exchange_code("GitHub", "good")

        assert result.external_uid == "4242"
        assert result.profile.email == "octocat@example.com"
        assert result.token["access_token"] == "gho_test"

    @pytest.mark.asyncio
    async def test_provider_outage_becomes_exchange_error(self):
        def down(request):
            return httpx.Response(503)

        client = httpx.AsyncClient(transport=httpx.MockTransport(down))
        registry = ProviderRegistry.from_settings(
            _settings(GitHub={"enabled": True, "clientId": "id", "clientSecret": "secret"}),
            factories={"GitHub": partial(GitHubOAuthProvider, http_client=client)},
        )

        with pytest.raises(ProviderExchangeError) as exc_info:
            await registry.exchange_code("GitHub", "good")
        assert exc_info.value.provider == "GitHub"
        assert "HTTPStatusError" in exc_info.value.detail

        await registry.aclose()

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_exchange_error(self, test_settings):
        class Exploding(GitHubOAuthProvider):
            async def authenticate(self, code, redirect_uri, handshake, oauth_token=None):
                raise RuntimeError("boom")

        registry = ProviderRegistry.from_settings(test_settings, factories={"GitHub": Exploding})

        with pytest.raises(ProviderExchangeError, match="boom"):
            await registry.exchange_code("GitHub", "good")
