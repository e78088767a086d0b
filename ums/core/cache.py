"""Small read-through TTL cache.

Used for lookup data that changes rarely but is read on every request,
such as the id of the main organization. The clock is injectable so
expiry can be tested without sleeping.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """In-memory cache whose entries expire ``ttl_seconds`` after being stored."""

    def __init__(self, ttl_seconds: float, clock: Optional[Callable[[], float]] = None):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._store: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss or expiry."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            value, expires = entry
            if self._clock() >= expires:
                self._store.pop(key, None)
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + self.ttl_seconds)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value, calling ``loader`` and storing its result on a miss."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        self.set(key, value)
        logger.debug("Cache miss for %r, loaded and stored", key)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
