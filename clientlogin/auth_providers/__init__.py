"""
Authentication providers package.

Handles provider-based authentication (OAuth1, OAuth2, password) and session management.
"""

from .providers import AuthProvider, ProviderKind  # noqa: F401
from .registry import ProviderRegistry  # noqa: F401
from .session import LoginOutcome, LoginState, LoginStatus, LogoutResult, SessionEngine  # noqa: F401

__all__ = [
    "AuthProvider",
    "LoginOutcome",
    "LoginState",
    "LoginStatus",
    "LogoutResult",
    "ProviderKind",
    "ProviderRegistry",
    "SessionEngine",
]
