import os
from functools import partial
from urllib.parse import parse_qs

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["PASSWORD_BCRYPT_ROUNDS"] = "4"
os.environ["ENV"] = "test"
os.environ.pop("REDIS_URL", None)
os.environ.pop("AUDIT_LOG_FILE", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from clientlogin.auth_providers.client_session import TransportSessionStore, _memory_store  # noqa: E402
from clientlogin.auth_providers.providers.oauth_base import GitHubOAuthProvider  # noqa: E402
from clientlogin.auth_providers.providers.password import create_password_profile  # noqa: E402
from clientlogin.auth_providers.registry import ProviderRegistry  # noqa: E402
from clientlogin.auth_providers.session import SessionEngine  # noqa: E402
from clientlogin.auth_providers.tokens import TokenGenerator  # noqa: E402
from clientlogin.core.config import Settings  # noqa: E402
from clientlogin.db.session import init_db  # noqa: E402
from clientlogin.dependencies import (  # noqa: E402
    get_credential_store,
    get_notifier,
    get_registry,
    get_transport_store,
)
from clientlogin.events import ClientLoginEvents, EventNotifier  # noqa: E402
from clientlogin.main import app  # noqa: E402
from clientlogin.storage import CredentialStore  # noqa: E402


VISITOR_ID = "v" * 43

GITHUB_USER = {
    "id": 4242,
    "login": "octocat",
    "name": "The Octocat",
    "email": "octocat@example.com",
    "avatar_url": "https://avatars.example.com/u/4242",
    "html_url": "https://github.com/octocat",
}


def github_api(request: httpx.Request) -> httpx.Response:
    """Stand-in for github.com: code "good" works, anything else is rejected."""
    if request.url.path == "/login/oauth/access_token":
        form = parse_qs(request.content.decode())
        if form.get("code") != ["good"]:
            return httpx.Response(
                200,
                json={
                    "error": "bad_verification_code",
                    "error_description": "The code passed is incorrect or expired.",
                },
            )
        return httpx.Response(200, json={"access_token": "gho_test", "token_type": "bearer", "scope": "user:email"})
    if request.url.path == "/user":
        if request.headers.get("Authorization") != "Bearer gho_test":
            return httpx.Response(401, json={"message": "Bad credentials"})
        return httpx.Response(200, json=GITHUB_USER)
    return httpx.Response(404)


@pytest.fixture
def test_settings():
    return Settings(
        SITE_ROOT="https://example.test",
        BASEPATH="authenticate",
        PASSWORD_BCRYPT_ROUNDS=4,
        PROVIDERS={
            "Password": {"enabled": True},
            "GitHub": {"enabled": True, "clientId": "gh-client", "clientSecret": "gh-secret"},
            "Google": {"enabled": False},
        },
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clientlogin.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def credential_store(db_engine):
    return CredentialStore(async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession))


@pytest_asyncio.fixture
async def registry(test_settings):
    github_client = httpx.AsyncClient(transport=httpx.MockTransport(github_api))
    registry = ProviderRegistry.from_settings(
        test_settings,
        factories={"GitHub": partial(GitHubOAuthProvider, http_client=github_client)},
    )
    yield registry
    await registry.aclose()


@pytest.fixture
def events():
    """Events received by the notifier, as (type, profile identifier)."""
    return []


@pytest.fixture
def notifier(events):
    notifier = EventNotifier()
    for event_type in ClientLoginEvents:
        notifier.add_listener(event_type, lambda event: events.append((event.type, event.profile.identifier)))
    return notifier


@pytest.fixture
def transport_store():
    _memory_store.clear()
    yield TransportSessionStore()
    _memory_store.clear()


@pytest.fixture
def visitor(transport_store):
    return transport_store.bind(VISITOR_ID)


@pytest.fixture
def session_engine(credential_store, registry, notifier):
    return SessionEngine(
        credential_store,
        registry,
        TokenGenerator(),
        notifier,
        login_expiry_days=14,
        state_ttl_seconds=600,
    )


@pytest_asyncio.fixture
async def alice(credential_store, registry):
    return await create_password_profile(
        credential_store,
        registry.password_provider(),
        "alice",
        "s3cret!",
        name="Alice Liddell",
        email="alice@example.com",
    )


@pytest_asyncio.fixture
async def api_client(credential_store, registry, notifier, transport_store):
    app.dependency_overrides[get_credential_store] = lambda: credential_store
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_transport_store] = lambda: transport_store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
