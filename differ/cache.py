"""Cache of computed release diffs.

Entries are keyed by the image name and the ordered pair (old digest, new
digest). Digests are only unique within an image, and the diff A -> B is the
inverse of B -> A and is never served for it. Release package sets never
change, so cached diffs never go stale and no invalidation exists. The
cache is only an optimization, every miss can be recomputed.
"""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from differ.backends import (
    CacheBackend,
    CacheBackendError,
    CacheError,
    MemoryBackend,
    RedisBackend,
)
from differ.config import Settings, parse_timeout
from differ.diff import DiffResult

log = logging.getLogger("differ.cache")

FORMAT_VERSION = 1

__all__ = [
    "CacheBackend",
    "CacheBackendError",
    "CacheError",
    "CacheLookup",
    "DiffCache",
    "LookupStatus",
    "SerializationError",
    "cache_key",
    "decode_diff",
    "encode_diff",
    "get_backend",
]


class SerializationError(CacheError):
    """A diff could not be encoded, or stored bytes could not be decoded"""


class LookupStatus(enum.Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


@dataclass(frozen=True)
class CacheLookup:
    """Outcome of a cache read.

    A backend failure is reported as ERROR with its cause, so callers can't
    mistake an unreachable cache for a missing entry.
    """

    status: LookupStatus
    value: Optional[DiffResult] = None
    error: Optional[Exception] = None

    @classmethod
    def hit(cls, value: DiffResult) -> "CacheLookup":
        return cls(LookupStatus.HIT, value=value)

    @classmethod
    def miss(cls) -> "CacheLookup":
        return cls(LookupStatus.MISS)

    @classmethod
    def failed(cls, error: Exception) -> "CacheLookup":
        return cls(LookupStatus.ERROR, error=error)

    @property
    def is_hit(self) -> bool:
        return self.status is LookupStatus.HIT

    @property
    def is_miss(self) -> bool:
        return self.status is LookupStatus.MISS

    @property
    def is_error(self) -> bool:
        return self.status is LookupStatus.ERROR


def cache_key(
    image_name: str, old_digest: str, new_digest: str, prefix: str = ""
) -> str:
    """Build the cache key for an ordered digest pair of an image.

    The image name and the old digest are length prefixed, so ("a", "b-c")
    and ("a-b", "c") map to different keys whatever characters they contain.
    """
    return (
        f"{prefix}{len(image_name)}:{image_name}"
        f"{len(old_digest)}:{old_digest}{new_digest}"
    )


def encode_diff(diff: DiffResult) -> bytes:
    """Serialize a diff into the versioned cache format.

    Raises:
        SerializationError: The diff could not be encoded
    """
    try:
        payload = {"format": FORMAT_VERSION, "diff": diff.model_dump(mode="json")}
        return json.dumps(payload, separators=(",", ":")).encode()
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Could not encode diff: {e}") from e


def decode_diff(data: bytes) -> DiffResult:
    """Deserialize a diff stored by encode_diff.

    Raises:
        SerializationError: The data is corrupt or uses another format version
    """
    try:
        payload = json.loads(data)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Stored diff is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or payload.get("format") != FORMAT_VERSION:
        raise SerializationError("Stored diff has an unknown format version")

    try:
        return DiffResult.model_validate(payload["diff"])
    except (KeyError, ValidationError) as e:
        raise SerializationError(f"Stored diff is malformed: {e}") from e


class DiffCache:
    """Get/set access to cached diffs on top of a pluggable backend"""

    def __init__(self, backend: CacheBackend, key_prefix: str = ""):
        self.backend = backend
        self.key_prefix = key_prefix

    def key(self, image_name: str, old_digest: str, new_digest: str) -> str:
        return cache_key(image_name, old_digest, new_digest, self.key_prefix)

    def get(self, image_name: str, old_digest: str, new_digest: str) -> CacheLookup:
        """Look up the diff from old_digest to new_digest of an image.

        Undecodable entries are logged and reported as a miss, the caller
        recomputes and overwrites them.

        Returns:
            CacheLookup with status HIT, MISS or ERROR
        """
        key = self.key(image_name, old_digest, new_digest)
        try:
            data = self.backend.get(key)
        except CacheBackendError as e:
            return CacheLookup.failed(e)

        if data is None:
            return CacheLookup.miss()

        try:
            return CacheLookup.hit(decode_diff(data))
        except SerializationError as e:
            log.warning(f"Discarding unreadable cache entry {key}: {e}")
            return CacheLookup.miss()

    def set(
        self, image_name: str, old_digest: str, new_digest: str, diff: DiffResult
    ) -> None:
        """Store the diff from old_digest to new_digest, overwriting any entry.

        Raises:
            SerializationError: The diff could not be encoded
            CacheBackendError: The backend rejected the write
        """
        self.backend.set(self.key(image_name, old_digest, new_digest), encode_diff(diff))

    def stats(self) -> dict:
        return self.backend.stats()

    def close(self) -> None:
        self.backend.close()


def get_backend(settings: Settings) -> CacheBackend:
    """Create the cache backend selected by the settings.

    Args:
        settings: Service settings, ``redis_url`` selects Redis

    Returns:
        RedisBackend if a Redis URL is configured, MemoryBackend otherwise
    """
    ttl = parse_timeout(settings.cache_ttl)
    if settings.redis_url:
        log.info("Using Redis diff cache")
        return RedisBackend.from_url(
            settings.redis_url, ttl=ttl, timeout=settings.redis_timeout
        )

    log.info(f"Using in-memory diff cache ({settings.cache_max_entries} entries)")
    return MemoryBackend(max_entries=settings.cache_max_entries, ttl=ttl)
