"""
Session engine: drives a login attempt from provider selection to a stored session.

Creates and manages visitor sessions regardless of auth method. The engine
keeps no per-request state of its own; everything that has to survive a
request lives in the credential store (profiles, sessions) or in the
visitor's transport session (session token, pending CSRF state).
"""

import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from ..audit import audit_auth_failure, audit_csrf_mismatch, audit_sessions_pruned
from ..events import ClientLoginEvents, EventNotifier
from ..exceptions import (
    CsrfMismatchError,
    InvalidCredentialsError,
    InvalidProviderError,
    MissingProviderError,
    ProviderExchangeError,
)
from ..storage import CredentialStore, StoredProfile
from .client_session import TransportSession
from .providers import ProviderKind
from .providers.password import PASSWORD_PROVIDER
from .registry import ProviderEntry, ProviderRegistry
from .tokens import TokenGenerator

logger = logging.getLogger(__name__)


class LoginState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PROVIDER_SELECTED = "provider_selected"
    AWAITING_OAUTH_CALLBACK = "awaiting_oauth_callback"
    PASSWORD_SUBMITTED = "password_submitted"
    AUTHENTICATED = "authenticated"
    LOGGED_OUT = "logged_out"


@dataclass
class LoginOutcome:
    """Where a login step left the visitor."""

    state: LoginState
    redirect_url: Optional[str] = None
    profile: Optional[StoredProfile] = None
    session_token: Optional[str] = None
    form: Optional[Dict[str, Any]] = None


@dataclass
class LoginStatus:
    logged_in: bool
    profile: Optional[StoredProfile] = None
    session_token: Optional[str] = None


@dataclass
class LogoutResult:
    logged_out: bool
    profile: Optional[StoredProfile] = None
    state: LoginState = field(default=LoginState.LOGGED_OUT)


def safe_return_url(url: Optional[str], default: str = "/") -> str:
    """Only allow site-relative paths as post-login destinations."""
    if not url:
        return default
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme or parts.netloc or not url.startswith("/") or url.startswith("//") or "\\" in url:
        return default
    return url


class SessionEngine:
    """
    Login state machine shared by every provider.

    Unauthenticated -> ProviderSelected -> AwaitingOAuthCallback | PasswordSubmitted
    -> Authenticated -> LoggedOut
    """

    TOKEN_SESSION = "clientlogin_session"
    TOKEN_STATE = "clientlogin_state"
    TOKEN_RETURN = "clientlogin_return"
    TOKEN_HANDSHAKE = "clientlogin_handshake"

    def __init__(
        self,
        store: CredentialStore,
        registry: ProviderRegistry,
        tokens: Optional[TokenGenerator] = None,
        notifier: Optional[EventNotifier] = None,
        *,
        login_expiry_days: int = 14,
        state_ttl_seconds: int = 600,
        debug_mode: bool = False,
    ):
        self.store = store
        self.registry = registry
        self.tokens = tokens or TokenGenerator()
        self.notifier = notifier or EventNotifier(debug_mode=debug_mode)
        self.login_expiry_days = login_expiry_days
        self.state_ttl_seconds = state_ttl_seconds
        self.debug_mode = debug_mode

    @property
    def session_ttl_seconds(self) -> int:
        return self.login_expiry_days * 24 * 60 * 60

    async def start_login(
        self,
        client: TransportSession,
        provider_name: Optional[str],
        return_url: Optional[str] = None,
    ) -> LoginOutcome:
        """
        Begin a login with the named provider.

        Args:
            client: The visitor's transport session
            provider_name: Provider as given by the visitor, any capitalisation
            return_url: Site-relative page to land on after login. None keeps
                the page saved by an earlier step of the same attempt

        Returns:
            AUTHENTICATED with a redirect if already logged in,
            PROVIDER_SELECTED with a form for the password provider,
            AWAITING_OAUTH_CALLBACK with the provider's authorization URL

        Raises:
            InvalidProviderError: Provider missing, unknown, or disabled
            ProviderExchangeError: OAuth1 request token could not be obtained
        """
        if not provider_name:
            raise MissingProviderError()
        entry = self.registry.resolve(provider_name)

        status = await self.is_logged_in(client)
        if status.logged_in:
            await self._notify(ClientLoginEvents.LOGIN, status.profile)
            return LoginOutcome(
                state=LoginState.AUTHENTICATED,
                redirect_url=safe_return_url(return_url),
                profile=status.profile,
                session_token=status.session_token,
            )

        if return_url is not None:
            await client.set(self.TOKEN_RETURN, safe_return_url(return_url), self.state_ttl_seconds)

        if entry.kind is ProviderKind.PASSWORD:
            return LoginOutcome(state=LoginState.PROVIDER_SELECTED, form=self._password_form(entry))

        state = self.tokens.generate()
        await client.set(self.TOKEN_STATE, state, self.state_ttl_seconds)
        try:
            request = await self.registry.build_authorization_url(entry.name, state)
        except ProviderExchangeError as e:
            await client.remove(self.TOKEN_STATE)
            logger.critical(f"ClientLogin OAuth error from {entry.name}: {e.detail}", exc_info=self.debug_mode)
            raise

        if request.handshake:
            await client.set(self.TOKEN_HANDSHAKE, json.dumps(request.handshake), self.state_ttl_seconds)
        else:
            await client.remove(self.TOKEN_HANDSHAKE)

        logger.debug(f"Redirecting visitor to {entry.name} for authorisation")
        return LoginOutcome(state=LoginState.AWAITING_OAUTH_CALLBACK, redirect_url=request.url)

    async def complete_oauth_callback(
        self,
        client: TransportSession,
        provider_name: Optional[str],
        code: Optional[str],
        state: Optional[str],
        oauth_token: Optional[str] = None,
    ) -> LoginOutcome:
        """
        Handle the provider redirecting the visitor back to us.

        The pending state token is consumed before anything else, so a
        callback can only ever be completed once.

        Raises:
            CsrfMismatchError: State token missing, expired, or different
            InvalidProviderError: Provider unknown, disabled, or not OAuth
            ProviderExchangeError: Provider rejected the code or was unreachable
        """
        saved_state = await client.pop(self.TOKEN_STATE)
        handshake_raw = await client.pop(self.TOKEN_HANDSHAKE)

        if not self._state_matches(saved_state, state):
            logger.error(f"Mismatch of state token for provider {provider_name!r}")
            audit_csrf_mismatch(provider_name)
            raise CsrfMismatchError()

        if not provider_name:
            raise MissingProviderError()
        entry = self.registry.resolve(provider_name)
        if entry.kind is ProviderKind.PASSWORD:
            raise InvalidProviderError(detail="Password provider has no OAuth callback")

        handshake = json.loads(handshake_raw) if handshake_raw else {}
        try:
            result = await self.registry.exchange_code(entry.name, code, handshake, oauth_token=oauth_token)
        except ProviderExchangeError as e:
            logger.critical(f"ClientLogin OAuth error from {entry.name}: {e.detail}", exc_info=self.debug_mode)
            audit_auth_failure(entry.name, "provider_exchange")
            raise

        provider_data = {"profile": result.profile.to_dict(), "token": result.token}
        return await self._login_complete(client, entry.name, result.external_uid, provider_data, result.token)

    async def login_password(
        self,
        client: TransportSession,
        username: Optional[str],
        password: Optional[str],
    ) -> LoginOutcome:
        """
        Check a submitted username and password.

        Unknown usernames and wrong passwords raise the same error and cost
        the same hashing time.

        Raises:
            InvalidProviderError: Password provider disabled
            InvalidCredentialsError: Unknown user or wrong password
        """
        entry = self.registry.resolve(PASSWORD_PROVIDER)
        provider = entry.handle

        profile = None
        if username:
            profile = await self.store.get_profile_by_identifier(entry.name, username)
        if profile is None:
            provider.dummy_verify()
            audit_auth_failure(entry.name, "unknown_user")
            raise InvalidCredentialsError()

        matched, replacement_hash = provider.verify_password(password, profile.provider_data.get("password"))
        if not matched:
            audit_auth_failure(entry.name, "wrong_password", identifier=username)
            raise InvalidCredentialsError()

        provider_data = dict(profile.provider_data)
        if replacement_hash:
            logger.info(f"Upgrading password hash for local user {profile.id}")
            provider_data["password"] = replacement_hash

        return await self._login_complete(client, entry.name, profile.identifier, provider_data, None)

    async def is_logged_in(self, client: TransportSession) -> LoginStatus:
        """
        Check if a visitor is logged in by session token.

        No token means not logged in. A token without a stored session means
        the session was revoked or expired, which is also just "not logged in".
        """
        token = await client.get(self.TOKEN_SESSION)
        if not token:
            return LoginStatus(logged_in=False)

        profile = await self.store.get_profile_by_session(token)
        if profile is None:
            logger.debug(f"No valid profile found for token '{token[:8]}...'")
            return LoginStatus(logged_in=False)

        await self.store.touch_session(token)
        return LoginStatus(logged_in=True, profile=profile, session_token=token)

    async def logout(self, client: TransportSession) -> LogoutResult:
        token = await client.get(self.TOKEN_SESSION)
        if not token:
            return LogoutResult(logged_out=False)

        profile = await self.store.get_profile_by_session(token)
        await self.store.delete_session(token)
        await client.remove(self.TOKEN_SESSION)

        if profile is not None:
            await self._notify(ClientLoginEvents.LOGOUT, profile)
        return LogoutResult(logged_out=profile is not None, profile=profile)

    async def prune_expired_sessions(
        self,
        retention_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete sessions created more than ``retention_days`` ago.

        A session created exactly at the cutoff is kept.

        Returns:
            Number of sessions deleted
        """
        days = self.login_expiry_days if retention_days is None else retention_days
        if days < 0:
            raise ValueError("retention_days must not be negative")

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        count = await self.store.delete_expired_sessions(cutoff)
        if count:
            logger.info(f"Deleted {count} sessions older than {days} days")
        else:
            logger.debug("No expired sessions to delete")
        audit_sessions_pruned(count, days)
        return count

    async def _login_complete(
        self,
        client: TransportSession,
        provider_name: str,
        identifier: str,
        provider_data: Dict[str, Any],
        provider_token: Optional[Dict[str, Any]],
    ) -> LoginOutcome:
        # Profile first: a failure before the session is written leaves a
        # valid profile and no session, never the other way round
        profile = await self.store.upsert_profile(provider_name, identifier, provider_data)
        session_token = await self._issue_session(client, profile, provider_token)
        return_url = safe_return_url(await client.pop(self.TOKEN_RETURN))

        await self._notify(ClientLoginEvents.LOGIN, profile)
        return LoginOutcome(
            state=LoginState.AUTHENTICATED,
            redirect_url=return_url,
            profile=profile,
            session_token=session_token,
        )

    async def _issue_session(
        self,
        client: TransportSession,
        profile: StoredProfile,
        provider_token: Optional[Dict[str, Any]],
    ) -> str:
        current = await client.get(self.TOKEN_SESSION)
        if current:
            existing = await self.store.get_session(current)
            if existing is not None and existing.profile_id == profile.id:
                return current
            if existing is not None:
                # Visitor switched accounts; the old session is unreachable now
                await self.store.delete_session(current)

        token = self.tokens.generate()
        await self.store.create_session(profile.id, token, provider_token)
        await client.set(self.TOKEN_SESSION, token, self.session_ttl_seconds)
        return token

    async def _notify(self, event_type: ClientLoginEvents, profile: Optional[StoredProfile]) -> None:
        if profile is None:
            return
        await self.notifier.dispatch(event_type, profile)

    @staticmethod
    def _state_matches(saved: Optional[str], given: Optional[str]) -> bool:
        if not saved or not given:
            return False
        return secrets.compare_digest(saved.encode("utf-8"), given.encode("utf-8"))

    def _password_form(self, entry: ProviderEntry) -> Dict[str, Any]:
        return {
            "action": entry.config.redirect_uri,
            "method": "POST",
            "fields": {
                "username": {"type": "text", "label": "Username", "required": True, "min_length": 5, "max_length": 64},
                "password": {"type": "password", "label": "Password", "required": True, "min_length": 6, "max_length": 64},
            },
        }
