"""FastAPI dependencies wiring the session engine to its collaborators."""

import re
import secrets
from functools import lru_cache

from fastapi import Depends, Request, Response

from .auth_providers.client_session import TransportSession, TransportSessionStore, client_session_store
from .auth_providers.registry import ProviderRegistry
from .auth_providers.session import SessionEngine
from .auth_providers.tokens import TokenGenerator
from .core.config import settings
from .events import EventNotifier
from .storage import CredentialStore


_VISITOR_ID = re.compile(r"^[A-Za-z0-9_-]{32,128}$")

notifier = EventNotifier(debug_mode=settings.DEBUG_MODE)
token_generator = TokenGenerator()


@lru_cache
def get_registry() -> ProviderRegistry:
    return ProviderRegistry.from_settings(settings)


def get_notifier() -> EventNotifier:
    return notifier


def get_credential_store() -> CredentialStore:
    return CredentialStore()


def get_transport_store() -> TransportSessionStore:
    return client_session_store


def get_session_engine(
    store: CredentialStore = Depends(get_credential_store),
    registry: ProviderRegistry = Depends(get_registry),
    events: EventNotifier = Depends(get_notifier),
) -> SessionEngine:
    return SessionEngine(
        store,
        registry,
        token_generator,
        events,
        login_expiry_days=settings.LOGIN_EXPIRY,
        state_ttl_seconds=settings.STATE_TTL_SECONDS,
        debug_mode=settings.DEBUG_MODE,
    )


def get_transport_session(
    request: Request,
    store: TransportSessionStore = Depends(get_transport_store),
) -> TransportSession:
    """Bind the visitor cookie to the transport store, minting a new ID if needed."""
    visitor_id = request.cookies.get(settings.COOKIE_NAME)
    if visitor_id and _VISITOR_ID.match(visitor_id):
        return store.bind(visitor_id)
    return store.bind(secrets.token_urlsafe(32), is_new=True)


def bind_visitor_cookie(response: Response, client: TransportSession) -> Response:
    """Send the visitor ID cookie on responses to first-time visitors."""
    if client.is_new:
        response.set_cookie(
            key=settings.COOKIE_NAME,
            value=client.visitor_id,
            httponly=True,
            secure=settings.COOKIE_SECURE and settings.ENV == "production",  # HTTPS only in production
            samesite=settings.COOKIE_SAMESITE,
            max_age=settings.session_ttl_seconds,
            domain=settings.COOKIE_DOMAIN,
        )
    return response
