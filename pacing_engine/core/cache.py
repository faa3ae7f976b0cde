"""
Read-through cache used by the calling layer.

The engine itself is stateless; routers own a TTLCache and consult it before
running a computation. Values are stored as-is and must be treated as
immutable by whoever reads them.
"""

import hashlib
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Simple time-based cache with explicit invalidation.

    Expired entries are swept on every write and at most `max_entries` are
    kept (oldest write evicted first), so keys that are never read again do
    not accumulate.
    """

    def __init__(
        self,
        ttl_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 256,
    ):
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._ttl = ttl_seconds
        self._clock = clock
        self._max_entries = max(max_entries, 1)

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def get(self, key: str) -> Optional[Any]:
        if key in self._cache:
            value, stored_at = self._cache[key]
            if self._clock() - stored_at < self._ttl:
                return value
            del self._cache[key]
        return None

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        self.purge_expired(now)
        # Re-insert so dict order stays oldest write first
        self._cache.pop(key, None)
        while len(self._cache) >= self._max_entries:
            oldest = next(iter(self._cache))
            del self._cache[oldest]
            logger.debug(f"Cache full; evicted {oldest[:12]}")
        self._cache[key] = (value, now)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [k for k, (_, stored_at) in self._cache.items() if now - stored_at >= self._ttl]
        for key in expired:
            del self._cache[key]
        return len(expired)

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns True when something was removed."""
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Tuple[Any, bool]:
        """
        Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Cache key (see make_cache_key).
            compute: Zero-argument coroutine factory producing the value.

        Returns:
            Tuple of (value, hit) where hit tells whether the cache answered.
        """
        cached = self.get(key)
        if cached is not None:
            logger.info(f"Cache hit for {key[:12]}")
            return cached, True
        value = await compute()
        self.set(key, value)
        return value, False


def make_cache_key(namespace: str, payload: Dict[str, Any]) -> str:
    """
    Stable cache key: namespace plus sha256 of the canonical JSON payload.

    Lists inside the payload must already be normalised (sorted, de-duplicated)
    by the caller so that equivalent requests share a key.
    """
    canonical = json.dumps(payload, sort_keys=True, default=str, separators=(',', ':'))
    digest = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
    return f"{namespace}:{digest}"
