"""Random token generation for session and state tokens."""

import secrets


class TokenGenerator:
    """Produces unguessable URL-safe tokens of a fixed length."""

    def __init__(self, length: int = 32):
        if length < 16:
            raise ValueError("Tokens shorter than 16 characters are too easy to guess")
        self.length = length

    def generate(self) -> str:
        # token_urlsafe yields ~1.3 chars per byte, trim to the exact length
        return secrets.token_urlsafe(self.length)[: self.length]
