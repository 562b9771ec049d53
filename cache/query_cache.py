"""
In-memory query cache with TTL for store search results.

Usage:
    cache = QueryCache(max_size=500)
    cache.start()
    page = cache.with_cache('search:jazz', 60, lambda: store.search('jazz', filters))
    cache.stop()

Eviction at capacity drops the oldest *inserted* key. Reads do not refresh
an entry's position, so this is FIFO, not LRU. ``with_cache`` does not
coalesce concurrent misses for the same key.
"""
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Pattern, TypeVar, Union

from processor.models import SearchFilters

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = object()

CACHE_KEYS = {
    'SEARCH': lambda query, filters: search_cache_key(query, filters),
    'STATS': lambda: 'stats',
}

# Seconds
CACHE_TTL = {
    'SEARCH': 60,
    'STATS': 300,
}

SEARCH_KEY_PATTERN = re.compile(r'^search:')


def search_cache_key(query: str, filters: SearchFilters) -> str:
    """Build the cache key of a search request."""
    parts = [
        (query or '').strip().lower(),
        filters.category or 'all',
        filters.time_window or 'all',
        filters.price or 'all',
        str(filters.offset),
        str(filters.limit),
    ]
    if filters.has_location:
        parts.append(f"{filters.latitude},{filters.longitude},{filters.radius_km}")
    return 'search:' + ':'.join(parts)


@dataclass
class CacheEntry:
    data: Any
    expires_at: float


class QueryCache:
    """Bounded in-memory cache with per-entry expiry and a sweep thread."""

    def __init__(
        self,
        max_size: int = 1000,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries
            sweep_interval: Seconds between background sweeps
            clock: Source of the current time in seconds
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        value = self._lookup(key)
        return None if value is _MISSING else value

    def set(self, key: str, data: Any, ttl_seconds: float) -> None:
        """Store a value that expires ttl_seconds from now."""
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug(f"Cache full, evicted '{oldest}'")
            self._entries[key] = CacheEntry(
                data=data,
                expires_at=self._clock() + ttl_seconds
            )

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_pattern(self, pattern: Union[str, Pattern]) -> int:
        """
        Delete every key matching a regular expression.

        Args:
            pattern: Regex string or compiled pattern, searched within keys

        Returns:
            Number of deleted entries
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict:
        with self._lock:
            return {
                'size': len(self._entries),
                'max_size': self.max_size,
                'entries': list(self._entries),
            }

    def with_cache(self, key: str, ttl_seconds: float, fetch_fn: Callable[[], T]) -> T:
        """
        Return the cached value for key, or fetch, store and return it.

        Staleness is bounded by ttl_seconds. Concurrent misses on the same
        key each call fetch_fn.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        data = fetch_fn()
        self.set(key, data, ttl_seconds)
        return data

    def sweep(self) -> int:
        """Remove all expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def start(self) -> None:
        """Start the background sweep thread if it is not running."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name='query-cache-sweeper',
            daemon=True
        )
        self._sweeper.start()

    def stop(self) -> None:
        """Stop the background sweep thread."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=self.sweep_interval)
            self._sweeper = None

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _lookup(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISSING
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return _MISSING
            return entry.data

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            self.sweep()
