# Overview: In-memory TTL cache, passed explicitly to whoever needs one.

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable


class TTLCache:
    """
    Key/value cache with per-entry expiry.

    Expired entries are dropped lazily on get() and in bulk by
    evict_expired(). The clock is injectable so tests can move time.
    """

    def __init__(self, default_ttl: float = 24 * 60 * 60, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        expiry = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (value, expiry)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expiry = entry
            if self._clock() > expiry:
                del self._entries[key]
                return default
            return value

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def evict_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expiry) in self._entries.items() if now > expiry]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
