#!/usr/bin/env python3
"""LRU cache with TTL support for destfs.

Caches here are plain objects owned by the component that uses them
(for example the option resolver's compiled-template cache); there is no
process-wide cache instance.

Example:
    >>> cache = LRUCache(CacheConfig(max_entries=128, max_size_bytes=1 << 20, ttl_seconds=60))
    >>> cache.set("key", value, size=10)
    >>> cache.get("key")
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


@dataclass
class CacheEntry:
    """Single cache entry with metadata."""

    key: str
    value: Any
    size: int
    timestamp: float = field(default_factory=lambda: time.monotonic())
    access_count: int = 0

    def is_expired(self, ttl: float) -> bool:
        return time.monotonic() - self.timestamp > ttl

    def touch(self) -> None:
        self.access_count += 1


@dataclass
class CacheConfig:
    """Configuration for a cache."""

    max_entries: int
    max_size_bytes: int
    ttl_seconds: float
    enabled: bool = True

    def validate(self) -> None:
        """Validate cache configuration."""
        if self.max_entries <= 0:
            raise ValueError(f"max_entries must be positive: {self.max_entries}")
        if self.max_size_bytes <= 0:
            raise ValueError(f"max_size_bytes must be positive: {self.max_size_bytes}")
        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive: {self.ttl_seconds}")


class LRUCache:
    """Thread-safe LRU cache with TTL and size limits."""

    def __init__(self, config: CacheConfig):
        """Initialize LRU cache.

        Args:
            config: Cache configuration
        """
        self.config = config
        self.config.validate()
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._current_size = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        if not self.config.enabled:
            self._misses += 1
            return None

        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self.config.ttl_seconds):
                self._remove_entry(key)
                self._expirations += 1
                self._misses += 1
                return None

            self._cache.move_to_end(key)
            entry.touch()
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, size: int) -> None:
        """Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            size: Size in bytes
        """
        if not self.config.enabled:
            return

        with self._lock:
            self._remove_entry(key)

            if size > self.config.max_size_bytes:
                return

            while self._cache and (
                len(self._cache) >= self.config.max_entries
                or self._current_size + size > self.config.max_size_bytes
            ):
                self._evict_lru()

            self._cache[key] = CacheEntry(key=key, value=value, size=size)
            self._current_size += size

    def get_or_create(self, key: str, factory: Callable[[], Any], size: int) -> Any:
        """Return the cached value for ``key``, building it on a miss.

        Args:
            key: Cache key
            factory: Called to build the value on a miss
            size: Size to account for a newly built value

        Returns:
            Cached or newly built value
        """
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value, size)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if key in self._cache:
                self._remove_entry(key)
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._current_size = 0

    def __len__(self) -> int:
        return len(self._cache)

    def _remove_entry(self, key: str) -> None:
        entry = self._cache.pop(key, None)
        if entry is not None:
            self._current_size -= entry.size

    def _evict_lru(self) -> None:
        key = next(iter(self._cache))
        self._remove_entry(key)
        self._evictions += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Cache statistics
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0

            return {
                "entries": len(self._cache),
                "size_bytes": self._current_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }
