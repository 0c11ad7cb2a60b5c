"""Tests for settings validation."""

import pytest

from clientlogin.core.config import ProviderSettings, Settings


class TestProductionConfig:
    def test_dev_is_not_checked(self):
        Settings(ENV="dev", SITE_ROOT="http://localhost:8000").validate_production_config()

    def test_production_requires_https(self):
        with pytest.raises(RuntimeError, match="https"):
            Settings(ENV="production", SITE_ROOT="http://example.test").validate_production_config()

    def test_production_requires_secure_cookie(self):
        with pytest.raises(RuntimeError, match="COOKIE_SECURE"):
            Settings(ENV="production", SITE_ROOT="https://example.test", COOKIE_SECURE=False).validate_production_config()

    def test_strict_samesite_breaks_the_redirect(self):
        with pytest.raises(RuntimeError, match="strict"):
            Settings(ENV="production", SITE_ROOT="https://example.test", COOKIE_SAMESITE="Strict").validate_production_config()

    def test_valid_production_config(self):
        Settings(
            ENV="production",
            SITE_ROOT="https://example.test",
            CORS_ALLOW_ORIGINS=["https://example.test"],
        ).validate_production_config()


class TestDefaults:
    def test_session_lifetime(self):
        settings = Settings(LOGIN_EXPIRY=14)

        assert settings.session_ttl_seconds == 14 * 24 * 60 * 60

    def test_every_provider_starts_disabled(self):
        settings = Settings()

        assert set(settings.PROVIDERS) == {"Password", "Google", "Facebook", "Twitter", "GitHub"}
        assert not any(p.enabled for p in settings.PROVIDERS.values())

    def test_new_keys_win_over_legacy_ones(self):
        provider = ProviderSettings(clientId="new", keys={"id": "old", "secret": "old-secret"})

        assert provider.resolved_client_id() == "new"
        assert provider.resolved_client_secret() == "old-secret"
