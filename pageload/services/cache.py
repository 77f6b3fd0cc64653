"""
Response Cache Service

In-memory, process-lifetime cache of upstream audit results keyed by
strategy|locale|targetUrl. Successes and failures are both cached, each with
its own TTL, so a burst of identical requests does not hammer a provider that
is already rejecting us.

Expiry is lazy: an entry is only checked (and dropped) when it is read, or
during the size sweep that follows a write. After every set(), when the map
exceeds max_entries, expired entries are swept first and then the oldest
insertions are evicted until the map is back at the cap. This is a best-effort
bound, not LRU.

All operations are synchronous, so on a single asyncio event loop they never
interleave. Concurrent writes for the same key are last-writer-wins.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pageload.models.enums import Strategy
from pageload.models.schemas import FetchOk, FetchResult


logger = logging.getLogger(__name__)


DEFAULT_SUCCESS_TTL_SECONDS = 300.0
DEFAULT_FAILURE_TTL_SECONDS = 30.0
DEFAULT_MAX_ENTRIES = 25


def make_cache_key(strategy: Strategy, locale: Optional[str], target_url: str) -> str:
    """Build the strategy|locale|targetUrl key; an absent locale is the empty string."""
    return f"{strategy.value}|{locale or ''}|{target_url}"


@dataclass
class CacheEntry:
    key: str
    result: FetchResult
    expires_at: float


class ResponseCache:
    """
    Bounded TTL map from cache key to the last FetchResult for that key.

    Args:
        success_ttl: Seconds a FetchOk stays valid
        failure_ttl: Seconds a FetchErr stays valid
        max_entries: Size above which the post-write sweep evicts
        clock: Monotonic seconds source, injectable for tests
    """

    def __init__(
        self,
        success_ttl: float = DEFAULT_SUCCESS_TTL_SECONDS,
        failure_ttl: float = DEFAULT_FAILURE_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[FetchResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        return entry.result

    def set(self, key: str, result: FetchResult) -> None:
        ttl = self.success_ttl if isinstance(result, FetchOk) else self.failure_ttl
        # Re-insert so an overwritten key counts as the newest entry
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, result=result, expires_at=self._clock() + ttl)

        if len(self._entries) > self.max_entries:
            self._evict()

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if now >= entry.expires_at]
        for k in expired:
            del self._entries[k]

        evicted = 0
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            evicted += 1

        logger.debug(
            f"Cache sweep removed {len(expired)} expired and {evicted} oldest entries "
            f"({len(self._entries)} remain)"
        )
