"""Password-based authentication provider."""

import logging
from typing import Any, Dict, Optional, Tuple

from passlib.context import CryptContext

from . import AuthProvider, NormalizedProfile, ProviderKind
from ...storage import CredentialStore, StoredProfile

logger = logging.getLogger(__name__)

PASSWORD_PROVIDER = "Password"


class PasswordAuthProvider(AuthProvider):
    """
    Username/password authentication provider.

    Uses bcrypt for password hashing and verification. Portable phpass hashes
    written by older deployments still verify, and are replaced with a
    bcrypt hash on the next successful login.
    """

    kind = ProviderKind.PASSWORD

    def __init__(self, name: str = PASSWORD_PROVIDER, rounds: int = 12):
        super().__init__(name)
        self.pwd_context = CryptContext(
            schemes=["bcrypt", "phpass"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> Tuple[bool, Optional[str]]:
        """Verify a plain text password against its stored hash.

        Args:
            plain_password: The password the visitor submitted
            hashed_password: The stored hash (may be None or malformed)

        Returns:
            (matched, replacement_hash); replacement_hash is set when the
            stored hash uses a deprecated scheme or work factor
        """
        if not plain_password or not hashed_password:
            self.dummy_verify()
            return False, None
        try:
            return self.pwd_context.verify_and_update(plain_password, hashed_password)
        except ValueError:
            logger.warning("Stored password hash is not in a recognised format")
            return False, None

    def dummy_verify(self) -> None:
        """Burn the same time as a real check, for unknown usernames."""
        self.pwd_context.dummy_verify()


def password_provider_data(
    provider: PasswordAuthProvider,
    username: str,
    password: str,
    **attributes: Any,
) -> Dict[str, Any]:
    profile = NormalizedProfile(uid=username, nickname=username, **attributes)
    return {"password": provider.hash_password(password), "profile": profile.to_dict()}


async def create_password_profile(
    store: CredentialStore,
    provider: PasswordAuthProvider,
    username: str,
    password: str,
    **attributes: Any,
) -> StoredProfile:
    """Provision (or reset) a local account for the password provider.

    Args:
        store: Credential store to write to
        provider: Password provider doing the hashing
        username: Login name, also the profile identifier
        password: Plain text password; only its hash is stored
        **attributes: Optional display attributes (name, email, image_url)

    Returns:
        The stored profile
    """
    data = password_provider_data(provider, username, password, **attributes)
    return await store.upsert_profile(provider.name, username, data)
