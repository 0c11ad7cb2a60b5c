"""Login endpoints: start a login, receive the provider callback, log out."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import ORJSONResponse, RedirectResponse

from ..auth_providers.client_session import TransportSession
from ..auth_providers.providers.password import PASSWORD_PROVIDER
from ..auth_providers.registry import ProviderRegistry, canonical_provider_name
from ..auth_providers.session import LoginOutcome, SessionEngine, safe_return_url
from ..core.config import settings
from ..dependencies import bind_visitor_cookie, get_registry, get_session_engine, get_transport_session
from ..exceptions import MissingProviderError
from ..models import LoginStatusResponse, PasswordFormResponse, PasswordLoginForm, ProfileResponse, ProviderInfo, ProviderList


logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"/{settings.BASEPATH.strip('/')}", tags=["authentication"])


def _outcome_response(outcome: LoginOutcome, provider: str, redirect_status: int = status.HTTP_302_FOUND):
    if outcome.form is not None:
        return ORJSONResponse(PasswordFormResponse(provider=provider, form=outcome.form).model_dump())
    return RedirectResponse(outcome.redirect_url or "/", status_code=redirect_status)


@router.get("/login")
async def login(
    provider: Optional[str] = Query(None, description="Provider to log in with"),
    redirect: Optional[str] = Query("/", description="Site-relative page to return to"),
    client: TransportSession = Depends(get_transport_session),
    engine: SessionEngine = Depends(get_session_engine),
):
    """
    Start a login.

    OAuth providers answer with a redirect to the provider's consent page,
    the password provider with a description of the form to post.
    """
    outcome = await engine.start_login(client, provider, redirect)
    return bind_visitor_cookie(_outcome_response(outcome, canonical_provider_name(provider) or provider), client)


@router.api_route("/endpoint", methods=["GET", "POST"])
async def endpoint(
    request: Request,
    provider: Optional[str] = Query(None),
    hauth_done: Optional[str] = Query(None, description="Provider name as sent by older installs"),
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    oauth_token: Optional[str] = Query(None),
    oauth_verifier: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    client: TransportSession = Depends(get_transport_session),
    engine: SessionEngine = Depends(get_session_engine),
):
    """
    Provider callback, and the target of the password form.

    Args:
        provider: Provider name
        code: OAuth2 authorization code
        state: CSRF state token
        oauth_token: OAuth1 request token
        oauth_verifier: OAuth1 verifier
        error: Error code sent by a provider when the visitor declined
    """
    provider_name = provider or hauth_done
    if not provider_name:
        raise MissingProviderError()

    if canonical_provider_name(provider_name) == PASSWORD_PROVIDER:
        if request.method != "POST":
            outcome = await engine.start_login(client, provider_name)
            return bind_visitor_cookie(_outcome_response(outcome, PASSWORD_PROVIDER), client)

        if request.headers.get("content-type", "").startswith("application/json"):
            try:
                payload = await request.json()
            except ValueError:
                payload = {}
        else:
            payload = dict(await request.form())
        form = PasswordLoginForm.model_validate(payload)
        outcome = await engine.login_password(client, form.username, form.password)
        return bind_visitor_cookie(_outcome_response(outcome, PASSWORD_PROVIDER, status.HTTP_303_SEE_OTHER), client)

    if error:
        logger.info(f"Provider {provider_name} returned error '{error}' to the callback")

    outcome = await engine.complete_oauth_callback(
        client,
        provider_name,
        code or oauth_verifier,
        state,
        oauth_token=oauth_token,
    )
    return bind_visitor_cookie(_outcome_response(outcome, provider_name), client)


@router.get("/logout")
async def logout(
    redirect: Optional[str] = Query("/"),
    client: TransportSession = Depends(get_transport_session),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Log out and return to the given page."""
    await engine.logout(client)
    return RedirectResponse(safe_return_url(redirect), status_code=status.HTTP_302_FOUND)


@router.get("/status", response_model=LoginStatusResponse)
async def login_status(
    client: TransportSession = Depends(get_transport_session),
    engine: SessionEngine = Depends(get_session_engine),
):
    """Report whether the visitor holds a live session."""
    result = await engine.is_logged_in(client)
    if not result.logged_in:
        return LoginStatusResponse(logged_in=False)
    return LoginStatusResponse(logged_in=True, profile=ProfileResponse.from_profile(result.profile))


@router.get("/providers", response_model=ProviderList)
async def list_auth_providers(registry: ProviderRegistry = Depends(get_registry)):
    """
    List enabled authentication providers.

    Returns:
        Provider names, their kind, and where to start a login
    """
    return ProviderList(
        providers=[
            ProviderInfo(
                name=config.name,
                type=config.kind.value,
                login_url=f"{router.prefix}/login?provider={config.name}",
            )
            for config in registry.available()
        ]
    )
