"""Pending login nonce storage.

Binds each pending login to a single-use nonce, keyed by the remote address
of the client that started the login. The callback consumes the nonce and
compares it with the nonce claim of the verified ID token.

Two backends are provided:
- InMemoryNonceStore: per-process, for single-instance deployments
- RedisNonceStore: shared across instances

Entries expire after a fixed window (5 minutes by default). Expiry is checked
lazily on read, so no background sweeper is needed.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_NONCE_TTL_SECONDS = 300
DEFAULT_MAX_ENTRIES = 10000


@dataclass(frozen=True)
class NonceStateEntry:
    """Pending login nonce"""
    key: str
    nonce: str
    created_at: float


class NonceStore(ABC):
    """Storage for pending login nonces.

    Lookups return a ``(nonce, found)`` pair. A miss is not an error here;
    the callback turns it into an authentication failure.
    """

    @abstractmethod
    async def put(self, client_key: str, nonce: str) -> None:
        """Store a nonce for a client, replacing any earlier one."""
        pass

    @abstractmethod
    async def get(self, client_key: str) -> tuple[Optional[str], bool]:
        """Return the client's fresh nonce without consuming it."""
        pass

    @abstractmethod
    async def pop(self, client_key: str) -> tuple[Optional[str], bool]:
        """Return the client's fresh nonce and remove it atomically."""
        pass


class InMemoryNonceStore(NonceStore):
    """Process-local nonce store bounded by time and size.

    WARNING: Only works for single-instance deployments. With several
    instances behind a load balancer, use RedisNonceStore.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_NONCE_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # Insertion ordered: oldest entry first
        self._entries: dict[str, NonceStateEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: NonceStateEntry, now: float) -> bool:
        return now - entry.created_at < self.ttl_seconds

    def _evict(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
        for key in expired:
            del self._entries[key]

        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.warning(f"Nonce store full, evicted pending login for {oldest}")

    async def put(self, client_key: str, nonce: str) -> None:
        async with self._lock:
            now = self._clock()
            # Re-insert so the entry moves to the young end
            self._entries.pop(client_key, None)
            if len(self._entries) >= self.max_entries:
                self._evict(now)
            self._entries[client_key] = NonceStateEntry(
                key=client_key, nonce=nonce, created_at=now
            )

    async def get(self, client_key: str) -> tuple[Optional[str], bool]:
        async with self._lock:
            entry = self._entries.get(client_key)
            if entry is None:
                return None, False
            if not self._is_fresh(entry, self._clock()):
                del self._entries[client_key]
                return None, False
            return entry.nonce, True

    async def pop(self, client_key: str) -> tuple[Optional[str], bool]:
        async with self._lock:
            entry = self._entries.pop(client_key, None)
            if entry is None or not self._is_fresh(entry, self._clock()):
                return None, False
            return entry.nonce, True


class RedisNonceStore(NonceStore):
    """Redis-backed nonce store shared by all service instances.

    Redis Storage Schema:
    - oidc:nonce:{client_key} -> {nonce} (expires after ttl_seconds)
    """

    def __init__(self, redis_client: Redis, ttl_seconds: int = DEFAULT_NONCE_TTL_SECONDS):
        """Initialize nonce store

        Args:
            redis_client: Redis connection for nonce storage
            ttl_seconds: Freshness window for pending logins
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.nonce_key_pattern = "oidc:nonce:{}"

    async def put(self, client_key: str, nonce: str) -> None:
        key = self.nonce_key_pattern.format(client_key)
        await self.redis.set(key, nonce, ex=self.ttl_seconds)

    async def get(self, client_key: str) -> tuple[Optional[str], bool]:
        value = await self.redis.get(self.nonce_key_pattern.format(client_key))
        return self._decode(value)

    async def pop(self, client_key: str) -> tuple[Optional[str], bool]:
        value = await self.redis.getdel(self.nonce_key_pattern.format(client_key))
        return self._decode(value)

    @staticmethod
    def _decode(value) -> tuple[Optional[str], bool]:
        if value is None:
            return None, False
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value, True
