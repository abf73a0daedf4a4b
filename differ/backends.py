"""Storage backends for the diff cache.

Implementations include:
- MemoryBackend: in-process, bounded, least-recently-used eviction
- RedisBackend: shared between service instances through Redis

Backends deal in opaque bytes, (de)serialization lives in differ.cache.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Callable, Optional

from cachetools import LRUCache, TTLCache
import redis

log = logging.getLogger("differ.cache")


class CacheError(Exception):
    """Base class for diff cache failures"""


class CacheBackendError(CacheError):
    """The cache store is unreachable or rejected an operation"""


class CacheBackend(ABC):
    """Abstract interface for a byte-valued key/value store"""

    name: str = "abstract"

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored value, None if the key is absent or expired.

        Raises:
            CacheBackendError: The store could not be queried
        """
        ...

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store value under key, replacing any previous value.

        Raises:
            CacheBackendError: The store rejected the write
        """
        ...

    def stats(self) -> dict:
        return {"backend": self.name}

    def close(self) -> None:
        pass


class _CountingEvictions:
    """Counts entries dropped to make room for new ones"""

    evictions = 0

    def popitem(self):
        key, value = super().popitem()
        self.evictions += 1
        log.debug(f"Evicted {key} from memory cache")
        return key, value


class _LRUCache(_CountingEvictions, LRUCache):
    pass


class _TTLCache(_CountingEvictions, TTLCache):
    pass


class MemoryBackend(CacheBackend):
    """In-memory backend with optional TTL and capacity.

    Once ``max_entries`` is exceeded the least recently used entry is
    evicted; both ``get`` and ``set`` count as a use. Entries older than
    ``ttl`` seconds are no longer returned.
    """

    name = "memory"

    def __init__(
        self,
        max_entries: Optional[int] = None,
        ttl: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl = ttl

        maxsize = max_entries if max_entries is not None else math.inf
        if ttl:
            self._cache = _TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)
        else:
            self._cache = _LRUCache(maxsize=maxsize)
        self._lock = Lock()

    @property
    def evictions(self) -> int:
        return self._cache.evictions

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._cache.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._cache[key] = value

    def __len__(self) -> int:
        with self._lock:
            if isinstance(self._cache, TTLCache):
                self._cache.expire()
            return len(self._cache)

    def stats(self) -> dict:
        return {
            "backend": self.name,
            "entries": len(self),
            "max_entries": self.max_entries,
            "evictions": self.evictions,
        }


class RedisBackend(CacheBackend):
    """Redis-backed cache shared between service instances.

    Expiry is delegated to Redis via ``SET ... EX``; eviction beyond that
    follows the server's ``maxmemory-policy``.
    """

    name = "redis"

    def __init__(self, client: Any, ttl: Optional[int] = None):
        """Create RedisBackend.

        Args:
            client: Redis client (or anything exposing get/set/close)
            ttl: Seconds before an entry expires, None to keep forever
        """
        self._redis = client
        self.ttl = ttl

    @classmethod
    def from_url(
        cls, redis_url: str, ttl: Optional[int] = None, timeout: Optional[float] = None
    ) -> "RedisBackend":
        client = redis.Redis.from_url(
            redis_url, socket_timeout=timeout, socket_connect_timeout=timeout
        )
        return cls(client, ttl=ttl)

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._redis.get(key)
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis GET {key} failed: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        try:
            self._redis.set(key, value, ex=self.ttl)
        except redis.RedisError as e:
            raise CacheBackendError(f"Redis SET {key} failed: {e}") from e

    def close(self) -> None:
        self._redis.close()
