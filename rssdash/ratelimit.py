"""A token-bucket rate limiter measured in requests per minute."""

from __future__ import annotations

import threading
import time
from typing import Callable

_DEFAULT_RATE = 60


class RateLimiter:
    """Token bucket holding up to ``requests_per_minute`` tokens."""

    INTERVAL = 60.0

    def __init__(
        self,
        requests_per_minute: int = _DEFAULT_RATE,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if requests_per_minute <= 0:
            requests_per_minute = _DEFAULT_RATE
        self._capacity = requests_per_minute
        self._tokens = requests_per_minute
        self._clock = clock
        self._sleep = sleep
        self._last = clock()
        self._lock = threading.Lock()

    def wait(self) -> None:
        """Block until a request may proceed, then consume a token."""
        with self._lock:
            now = self._clock()
            elapsed = now - self._last
            if elapsed > self.INTERVAL:
                self._tokens = self._capacity
                self._last = now
            else:
                to_add = int(self._capacity * (elapsed / self.INTERVAL))
                if to_add > 0:
                    self._tokens = min(self._tokens + to_add, self._capacity)
                    self._last = now

            if self._tokens <= 0:
                delay = self._last + self.INTERVAL / self._capacity - now
                if delay > 0:
                    self._sleep(delay)
                self._last = self._clock()
                self._tokens = self._capacity - 1
                return

            self._tokens -= 1
            self._last = now

    def set_rate(self, requests_per_minute: int) -> None:
        """Change the rate, scaling the available tokens in proportion."""
        with self._lock:
            if requests_per_minute <= 0:
                requests_per_minute = _DEFAULT_RATE
            ratio = requests_per_minute / self._capacity
            self._capacity = requests_per_minute
            self._tokens = int(self._tokens * ratio)

    @property
    def rate(self) -> int:
        """The maximum number of requests per minute."""
        with self._lock:
            return self._capacity

    @property
    def tokens(self) -> int:
        """The number of tokens currently available."""
        with self._lock:
            return self._tokens

    def reset(self) -> None:
        """Refill the bucket and restart its clock."""
        with self._lock:
            self._tokens = self._capacity
            self._last = self._clock()