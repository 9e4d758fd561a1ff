"""In-memory key/value store with per-entry expiry.

Owned by whoever constructs it (typically the Source API client factory) and
injected into consumers; there is no module-level cache state.
"""

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    obtained_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now >= self.obtained_at + self.ttl_seconds


class TTLStore(Generic[T]):
    """Thread-safe TTL cache.

    Args:
        ttl_seconds: Default lifetime of an entry
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, _Entry[T]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None when missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = _Entry(value=value, obtained_at=self._clock(), ttl_seconds=ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
