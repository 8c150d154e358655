"""
Caching System
==============

In-memory tables for EDSM lookups.

- One lock per table; concurrent writers of the same key simply overwrite
- Entries live until ``clear()`` unless the table was given a TTL
- Optional entry limit, least recently used entry goes first
- CacheManager owns every table so a device re-init can drop them all
"""

# ============================================================================
# MODULE OVERVIEW
# ============================================================================
# Purpose:
#   caching.py
#
# Connected modules (direct imports):
#   error_handling
#
# Notes:
#   - RemoteDataCache creates its tables without TTL or size limit: remote
#     data is fixed for the length of a session.
# ============================================================================

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from error_handling import ErrorHandler

logger = logging.getLogger("edmfd.caching")


# ============================================================================
# CLASSES
# ============================================================================

@dataclass
class _Slot:
    value: Any
    stored_at: float
    ttl: Optional[float]


@dataclass
class CacheStats:
    name: str
    size: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return (self.hits / lookups * 100) if lookups else 0.0


class Cache:
    """
    Thread-safe keyed table.

    Usage:
        systems = Cache("edsm-systems")
        systems.set(url, system)
        systems.get(url)          # None on a miss
    """

    def __init__(
        self,
        name: str,
        default_ttl: Optional[float] = None,
        max_size: Optional[int] = None,
        error_handler: Optional[ErrorHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Table name (logs and stats)
            default_ttl: Seconds an entry stays valid (None = until cleared)
            max_size: Entry limit (None = unbounded)
            error_handler: Kept for callers that report through it
            clock: Time source (tests inject a fake)
        """
        self.name = name
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.error_handler = error_handler
        self.clock = clock

        self._slots: "OrderedDict[Hashable, _Slot]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats(name=name, size=0)

    def _live(self, key: Hashable) -> Optional[_Slot]:
        slot = self._slots.get(key)
        if slot is None:
            return None
        if slot.ttl is not None and self.clock() - slot.stored_at > slot.ttl:
            del self._slots[key]
            return None
        return slot

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None when absent or expired"""
        with self._lock:
            slot = self._live(key)
            if slot is None:
                self._stats.misses += 1
                return None
            self._slots.move_to_end(key)
            self._stats.hits += 1
            return slot.value

    def contains(self, key: Hashable) -> bool:
        """Membership test that leaves hit counts and recency alone"""
        with self._lock:
            return self._live(key) is not None

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None):
        with self._lock:
            self._slots[key] = _Slot(
                value=value,
                stored_at=self.clock(),
                ttl=ttl if ttl is not None else self.default_ttl,
            )
            self._slots.move_to_end(key)
            if self.max_size is not None:
                while len(self._slots) > self.max_size:
                    self._slots.popitem(last=False)
                    self._stats.evictions += 1

    def clear(self):
        with self._lock:
            self._slots.clear()
            self._stats = CacheStats(name=self.name, size=0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                name=self.name,
                size=len(self._slots),
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
            )


class CacheManager:
    """Creates the named tables and flushes them together"""

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self.error_handler = error_handler
        self.caches: Dict[str, Cache] = {}
        self._lock = threading.Lock()

    def create_cache(
        self,
        name: str,
        default_ttl: Optional[float] = None,
        max_size: Optional[int] = None,
    ) -> Cache:
        """The table called ``name``, created on first request"""
        with self._lock:
            cache = self.caches.get(name)
            if cache is None:
                cache = Cache(name, default_ttl, max_size, self.error_handler)
                self.caches[name] = cache
            return cache

    def clear_all(self):
        with self._lock:
            tables = list(self.caches.values())
        for cache in tables:
            cache.clear()
        logger.debug("Cleared %d cache table(s)", len(tables))

    def all_stats(self) -> Dict[str, CacheStats]:
        with self._lock:
            tables = list(self.caches.values())
        return {cache.name: cache.stats() for cache in tables}
