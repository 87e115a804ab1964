"""
In-memory TTL cache for external revenue estimates.

Entries are keyed by the lower-cased identifier and remember whether they are
positive (a usable value) or negative (confirmed no data). Negative entries
expire quickly so a failing source is retried soon, but not on every lookup.

The clock is injectable so TTL behaviour is testable without sleeping.
Process-local and thread-safe for the prefetch worker pool; not meant to be
shared across concurrent runs.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

# Returned by lookup() when the key was never fetched or its entry expired.
MISS = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    is_negative: bool


def normalize_key(key) -> str:
    return str(key or '').strip().lower()


class EstimateCache:
    """Mapping of normalized key → CacheEntry with positive/negative TTLs."""

    def __init__(self, positive_ttl: float = 600, negative_ttl: float = 60,
                 clock: Callable[[], float] = time.monotonic):
        self.positive_ttl = positive_ttl
        self.negative_ttl = negative_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def lookup(self, key):
        """MISS if unknown/expired, None for a live negative entry, else the cached value."""
        k = normalize_key(key)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(k)
            if entry is None:
                return MISS
            if now >= entry.expires_at:
                del self._entries[k]
                return MISS
            return None if entry.is_negative else entry.value

    def put(self, key, value) -> None:
        """Store value; None is stored as a negative entry with the short TTL."""
        k = normalize_key(key)
        negative = value is None
        ttl = self.negative_ttl if negative else self.positive_ttl
        with self._lock:
            self._entries[k] = CacheEntry(
                value=value,
                expires_at=self._clock() + ttl,
                is_negative=negative,
            )

    def is_negative(self, key) -> bool:
        """True only for a live negative entry ("confirmed no data")."""
        k = normalize_key(key)
        with self._lock:
            entry = self._entries.get(k)
            return bool(entry and entry.is_negative and self._clock() < entry.expires_at)

    def get_or_fetch(self, key, fetch: Callable[[str], Optional[Any]]):
        """Return the cached value for key, calling fetch(normalized_key) on a miss."""
        k = normalize_key(key)
        if not k:
            return None
        cached = self.lookup(k)
        if cached is not MISS:
            return cached
        value = fetch(k)
        self.put(k, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
