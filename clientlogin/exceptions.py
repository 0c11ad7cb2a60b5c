"""Error taxonomy for the login flow.

Every error carries the HTTP status the router should answer with and a
public message that is safe to show to the visitor. Anything more specific
goes to the server log only.
"""

from fastapi import status


class ClientLoginError(Exception):
    """Base class for user-facing login errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Login failed"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.message
        self.detail = detail
        super().__init__(detail or self.message)


class InvalidProviderError(ClientLoginError):
    """Provider missing, unknown, or disabled."""

    status_code = status.HTTP_403_FORBIDDEN
    message = "Invalid or disabled provider"


class UnknownProviderError(InvalidProviderError):
    """Raised by the provider registry when a name does not resolve."""


class MissingProviderError(InvalidProviderError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Provider not given"


class CsrfMismatchError(ClientLoginError):
    """State token missing, expired, or not matching.

    The message is identical for every sub-case.
    """

    status_code = status.HTTP_403_FORBIDDEN
    message = "Invalid login state"


class ProviderExchangeError(ClientLoginError):
    """The provider rejected the code, or talking to it failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    message = "The provider returned an error. Please contact this site's administrator."

    def __init__(self, provider: str, detail: str | None = None):
        self.provider = provider
        super().__init__(detail=detail)


class InvalidCredentialsError(ClientLoginError):
    """Wrong password or unknown local user; never says which."""

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid username or password"


class ConfigurationError(RuntimeError):
    """Provider configuration cannot be loaded."""
