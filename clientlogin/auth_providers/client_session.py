"""
Transport-level session store: per-visitor values that survive the OAuth redirect.

Provides:
- Session and CSRF state tokens keyed by an opaque visitor ID (cookie)
- Atomic pop so a state token can be consumed only once
- Redis backend with an in-memory fallback for single-process deployments
"""

import logging
import time
from typing import Optional

from ..core.config import settings

logger = logging.getLogger(__name__)

# In-memory fallback when Redis is unavailable: key -> (value, expires_at)
_memory_store: dict[str, tuple[str, float]] = {}


class TransportSessionStore:
    """Visitor-scoped key/value store backed by Redis or in-memory fallback."""

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "clientlogin:"):
        self._redis_url = redis_url
        self._redis = None
        self._prefix = prefix

    @property
    def backend(self) -> str:
        return "redis" if self._redis else "memory"

    async def connect(self) -> bool:
        """Connect to Redis if configured."""
        if not self._redis_url:
            logger.warning("Client session store: Redis not configured, using in-memory fallback")
            return False

        try:
            import redis.asyncio as redis
            self._redis = redis.from_url(self._redis_url, decode_responses=True, encoding="utf-8")
            await self._redis.ping()
            logger.info("Client session store: Connected to Redis")
            return True
        except Exception as e:
            logger.warning(f"Client session store: Redis connection failed: {e}, using in-memory")
            self._redis = None
            return False

    async def disconnect(self):
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.close()
            self._redis = None

    def _key(self, visitor_id: str, name: str) -> str:
        return f"{self._prefix}{visitor_id}:{name}"

    async def get(self, visitor_id: str, name: str) -> Optional[str]:
        key = self._key(visitor_id, name)
        if self._redis:
            return await self._redis.get(key)

        entry = _memory_store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.time():
            _memory_store.pop(key, None)
            return None
        return value

    async def set(self, visitor_id: str, name: str, value: str, ttl_seconds: int) -> None:
        key = self._key(visitor_id, name)
        if self._redis:
            await self._redis.setex(key, ttl_seconds, value)
        else:
            _memory_store[key] = (value, time.time() + ttl_seconds)
        logger.debug(f"Stored '{name}' for visitor {visitor_id[:8]}...")

    async def remove(self, visitor_id: str, name: str) -> None:
        key = self._key(visitor_id, name)
        if self._redis:
            await self._redis.delete(key)
        else:
            _memory_store.pop(key, None)

    async def pop(self, visitor_id: str, name: str) -> Optional[str]:
        """
        Read and delete a value in one step.

        Redis GETDEL is atomic server-side; the in-memory dict.pop has no
        await between read and delete, so two concurrent callbacks cannot
        both see the same value.
        """
        key = self._key(visitor_id, name)
        if self._redis:
            return await self._redis.getdel(key)

        entry = _memory_store.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.time():
            return None
        return value

    def purge_expired(self) -> int:
        """Drop expired in-memory entries. Redis expires keys on its own."""
        if self._redis:
            return 0
        now = time.time()
        expired = [key for key, (_, expires_at) in _memory_store.items() if expires_at <= now]
        for key in expired:
            _memory_store.pop(key, None)
        return len(expired)

    def bind(self, visitor_id: str, is_new: bool = False) -> "TransportSession":
        return TransportSession(self, visitor_id, is_new=is_new)


class TransportSession:
    """The store as seen by one visitor for the duration of one request."""

    def __init__(self, store: TransportSessionStore, visitor_id: str, is_new: bool = False):
        self.store = store
        self.visitor_id = visitor_id
        self.is_new = is_new

    async def get(self, name: str) -> Optional[str]:
        logger.debug(f"Getting '{name}' token.")
        return await self.store.get(self.visitor_id, name)

    async def set(self, name: str, value: str, ttl_seconds: int) -> None:
        await self.store.set(self.visitor_id, name, value, ttl_seconds)
        # A login cannot continue if the value did not stick
        if await self.store.get(self.visitor_id, name) != value:
            raise RuntimeError(f"Unable to store '{name}' in the client session")

    async def remove(self, name: str) -> None:
        logger.debug(f"Removing '{name}' token.")
        await self.store.remove(self.visitor_id, name)

    async def pop(self, name: str) -> Optional[str]:
        return await self.store.pop(self.visitor_id, name)


# Global instance
client_session_store = TransportSessionStore(settings.REDIS_URL)
