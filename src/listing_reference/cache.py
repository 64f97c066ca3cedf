import threading
import time
from collections import OrderedDict

from listing_reference.models import CacheEntry


class ResolutionCache:
    """Bounded TTL cache of resolved references, least-recently-used first out."""

    def __init__(self, max_entries=500, ttl_ms=30 * 60 * 1000, enabled=True, clock=None):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl_ms = ttl_ms
        self.enabled = enabled
        self._clock = clock or time.monotonic
        self._entries = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "expirations": 0}

    def get(self, key):
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return None
            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return entry.value

    def put(self, key, value, ttl_ms=None):
        if not self.enabled:
            return
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        now = self._clock()
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                self._stats["evictions"] += 1
            self._entries[key] = CacheEntry(
                key=key, value=value, inserted_at=now, expires_at=now + ttl / 1000.0
            )

    def purge_expired(self):
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expired(now)]
            for key in stale:
                del self._entries[key]
            self._stats["expirations"] += len(stale)
        return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()
            for name in self._stats:
                self._stats[name] = 0

    def stats(self):
        with self._lock:
            return dict(self._stats)

    def __contains__(self, key):
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.expired(self._clock())

    def __len__(self):
        with self._lock:
            return len(self._entries)
