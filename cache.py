#!/usr/bin/env python3
"""
Freshness cache for canonical feeds.

The fetcher only relies on the get/set-by-id contract described by
FeedCacheProtocol; FeedCache is the in-memory implementation used by the CLI
and tests. Entries expire after a fixed timeout measured on a monotonic clock.
"""

from time import monotonic
from typing import Callable, Dict, Hashable, Optional, Protocol, Tuple

from config import config, get_logger
from models import Feed

logger = get_logger("cache")


class FeedCacheProtocol(Protocol):
    def get_cache_for_id(self, site_id: Hashable) -> Optional[Feed]:
        ...

    def set_cache_for_id(self, site_id: Hashable, feed: Feed) -> None:
        ...


class FeedCache:
    """In-memory site id -> Feed cache with a fixed freshness window."""

    def __init__(self, timeout_seconds: Optional[float] = None, clock: Callable[[], float] = monotonic) -> None:
        self.timeout_seconds = config.CACHE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Feed, float]] = {}

    def _is_expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at >= self.timeout_seconds

    def get_cache_for_id(self, site_id: Hashable) -> Optional[Feed]:
        """Return the cached feed if present and still fresh, else None."""
        cached = self._entries.get(site_id)
        if cached is None:
            return None
        feed, stored_at = cached
        if self._is_expired(stored_at):
            age = self._clock() - stored_at
            logger.debug(f"Cache entry for site {site_id} expired ({age:.1f}s old)")
            del self._entries[site_id]
            return None
        return feed

    def set_cache_for_id(self, site_id: Hashable, feed: Feed) -> None:
        self._entries[site_id] = (feed, self._clock())

    def invalidate(self, site_id: Hashable) -> None:
        self._entries.pop(site_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, site_id: Hashable) -> bool:
        return self.get_cache_for_id(site_id) is not None

    def prune(self) -> int:
        """Evict every expired entry and return how many were removed."""
        expired = [site_id for site_id, (_, stored_at) in self._entries.items() if self._is_expired(stored_at)]
        for site_id in expired:
            del self._entries[site_id]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        """Number of fresh entries; expired ones are evicted first."""
        self.prune()
        return len(self._entries)
