"""
Per-key TTL cache owned by a service instance.

Unbounded and lock-free: two concurrent misses for the same key both fetch and
the last write wins. Fine while the key space (tenants) stays small.
"""

import time
from typing import Any, Callable, Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Maps keys to values that expire ttl seconds after they were set."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Any, tuple[V, float]] = {}

    def get(self, key: Any) -> V | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, cached_at = entry
        if self._clock() - cached_at >= self.ttl:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: Any, value: V) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: Any) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
