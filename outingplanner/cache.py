"""Place-lookup cache and Places API throttle, both safe to share across worker threads."""

from __future__ import annotations

from collections import OrderedDict
import threading
import time
from typing import Any, Callable


Clock = Callable[[], float]


def place_key(name: str, address: str) -> str:
    """Cache key for a `{name, address}` lookup; case and spacing do not matter."""
    return "place:" + "|".join(" ".join(part.lower().split()) for part in (name, address))


class MemoryCache:
    """LRU cache whose entries expire after a per-entry TTL."""

    def __init__(self, max_size: int = 256, clock: Clock | None = None) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self.max_size = max_size
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._entries.pop(key, None)
            if ttl_seconds <= 0:
                return
            self._entries[key] = (self._clock() + ttl_seconds, value)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)


class RateLimiter:
    """Token bucket: `capacity` calls in a burst, refilled at `rate_per_second`."""

    def __init__(self, rate_per_second: float, capacity: float, clock: Clock | None = None) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be > 0")
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.rate_per_second = rate_per_second
        self.capacity = capacity
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._tokens = capacity
        self._last_refill = self._clock()

    def acquire(self) -> float:
        """Take one token. Returns 0.0 on success, else the seconds until one is free."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last_refill)
            self._last_refill = now
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate_per_second)
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self.rate_per_second
