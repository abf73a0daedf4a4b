"""
Diff Service - cached release diffs

This service:
1. Checks the diff cache for the requested digest pair
2. On a miss, resolves both releases and computes the diff
3. Stores the computed diff for future requests

A broken cache never fails a request: read failures fall back to computing
the diff, write failures are logged and the computed diff is returned.
"""

import logging
from concurrent.futures import Future
from threading import Lock
from typing import Callable, Optional

from differ.cache import CacheError, DiffCache
from differ.diff import DiffResult, compute_diff
from differ.storage import Storage

log = logging.getLogger("differ.service")


class DiffService:
    """
    Computes diffs between two releases of an image, backed by a DiffCache.

    With ``coalesce=True`` concurrent misses for the same image and digest
    pair share a single computation: the first request computes, the others
    wait for it and receive a copy of its result or its exception. Without it
    duplicate computations may race, which is harmless since they store
    identical content.
    """

    def __init__(self, storage: Storage, cache: DiffCache, coalesce: bool = False):
        self.storage = storage
        self.cache = cache
        self.coalesce = coalesce
        self._inflight: dict[str, Future] = {}
        self._lock = Lock()
        self._counters = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
            "computations": 0,
            "coalesced": 0,
            "write_failures": 0,
        }

    def _count(self, counter: str) -> None:
        with self._lock:
            self._counters[counter] += 1

    def diff(self, image_name: str, old_digest: str, new_digest: str) -> DiffResult:
        """
        Get the package changes from one release of an image to another.

        Args:
            image_name: Name of the image both releases belong to
            old_digest: Digest of the release to diff from
            new_digest: Digest of the release to diff to

        Returns:
            DiffResult, from the cache if available

        Raises:
            NotFoundError: The image or one of the releases does not exist
        """
        self.storage.get_image(image_name)

        lookup = self.cache.get(image_name, old_digest, new_digest)
        if lookup.is_hit:
            self._count("hits")
            log.debug(f"Cache hit for {image_name} {old_digest} -> {new_digest}")
            return lookup.value

        if lookup.is_error:
            self._count("errors")
            log.warning(f"Diff cache unavailable, computing directly: {lookup.error}")
        else:
            self._count("misses")

        def compute() -> DiffResult:
            return self._compute_and_store(image_name, old_digest, new_digest)

        if self.coalesce:
            return self._single_flight(
                self.cache.key(image_name, old_digest, new_digest), compute
            )
        return compute()

    def _compute_and_store(
        self, image_name: str, old_digest: str, new_digest: str
    ) -> DiffResult:
        old_release = self.storage.lookup_release(image_name, old_digest)
        new_release = self.storage.lookup_release(image_name, new_digest)

        result = compute_diff(old_release, new_release)
        self._count("computations")

        try:
            self.cache.set(image_name, old_digest, new_digest, result)
        except CacheError as e:
            self._count("write_failures")
            log.warning(f"Failed to cache diff {old_digest} -> {new_digest}: {e}")

        return result

    def _single_flight(self, key: str, func: Callable[[], DiffResult]) -> DiffResult:
        with self._lock:
            future: Optional[Future] = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future

        if not leader:
            self._count("coalesced")
            return future.result().model_copy(deep=True)

        try:
            result = func()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def stats(self) -> dict:
        with self._lock:
            counters = dict(self._counters)
        return {**self.cache.stats(), **counters, "coalesce": self.coalesce}
