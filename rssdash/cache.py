"""A thread-safe in-memory cache whose entries expire after a fixed time."""

from __future__ import annotations

import threading
import time
import weakref
from datetime import timedelta
from typing import Any, Callable


def _cleanup_loop(ref: weakref.ref[Cache], interval: float) -> None:
    while True:
        time.sleep(interval)
        cache = ref()
        if cache is None:
            return
        cache.purge_expired()
        del cache


class Cache:
    """Key-value store whose entries expire ``timeout`` after they are set.

    Expired entries are purged every ``cleanup_interval`` seconds; ``None`` disables this.
    """

    def __init__(
        self,
        timeout: timedelta | float,
        *,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float | None = 60.0,
    ) -> None:
        self._timeout = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
        self._clock = clock
        self._items: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        if cleanup_interval:
            threading.Thread(
                target=_cleanup_loop, args=(weakref.ref(self), cleanup_interval), daemon=True
            ).start()

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[key] = (value, self._clock() + self._timeout)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` if absent or expired."""
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return default
            if self._clock() > entry[1]:
                del self._items[key]
                return default
            return entry[0]

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires) in self._items.items() if now > expires]
            for key in expired:
                del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)