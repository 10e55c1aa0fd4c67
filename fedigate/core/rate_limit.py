"""In-memory token bucket used for client-side admission control."""

from __future__ import annotations

from threading import Lock
import time
from typing import Callable


class TokenBucketLimiter:
    """Non-blocking token bucket.

    The bucket starts full. Each ``try_consume`` call first tops the bucket up
    by ``elapsed * refill_per_second`` (capped at ``capacity``) and then
    either takes ``n`` tokens or rejects without touching the balance. Both
    steps run under one lock, so concurrent callers (threads or asyncio tasks)
    never spend the same token twice.
    """

    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_per_second < 0:
            raise ValueError("refill_per_second must not be negative")

        self._capacity = int(capacity)
        self._refill_per_second = float(refill_per_second)
        self._clock = clock
        self._lock = Lock()
        self._tokens = float(self._capacity)
        self._last_refill = clock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def refill_per_second(self) -> float:
        return self._refill_per_second

    def try_consume(self, n: int = 1) -> bool:
        if n <= 0:
            raise ValueError("n must be positive")

        with self._lock:
            self._refill()
            if self._tokens >= n:
                self._tokens -= n
                return True
            return False

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def reset(self) -> None:
        with self._lock:
            self._tokens = float(self._capacity)
            self._last_refill = self._clock()

    def _refill(self) -> None:
        now = self._clock()
        # A clock that moves backwards must never drain the bucket.
        elapsed = max(now - self._last_refill, 0.0)
        self._last_refill = now
        self._tokens = min(float(self._capacity), self._tokens + elapsed * self._refill_per_second)
