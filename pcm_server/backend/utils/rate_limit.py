"""Per-client token bucket used to throttle session creation."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class KeyedRateLimiter:
    """Allows ``capacity`` events per key, refilled at ``refill_per_sec``.

    Buckets that have refilled completely carry no state and are dropped
    during periodic pruning, so the table only holds recently active keys.
    """

    def __init__(
        self,
        capacity: float,
        refill_per_sec: float,
        time_fn: Callable[[], float] | None = None,
        *,
        prune_interval_sec: float = 60.0,
    ) -> None:
        self._capacity = max(0.0, float(capacity))
        self._refill_per_sec = max(0.0, float(refill_per_sec))
        self._time_fn = time_fn or time.monotonic
        self._prune_interval_sec = max(0.0, float(prune_interval_sec))
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._last_prune = self._time_fn()

    @classmethod
    def per_window(
        cls,
        count: int,
        window_sec: float,
        time_fn: Callable[[], float] | None = None,
    ) -> "KeyedRateLimiter":
        """At most ``count`` events per ``window_sec``; count <= 0 disables."""
        window = float(window_sec)
        refill = count / window if count > 0 and window > 0 else 0.0
        return cls(capacity=count, refill_per_sec=refill, time_fn=time_fn)

    @property
    def enabled(self) -> bool:
        return self._capacity > 0 and self._refill_per_sec > 0

    def allow(self, key: str, amount: float = 1.0) -> bool:
        """Consume ``amount`` tokens for ``key``; returns False when exhausted."""
        if not self.enabled or amount <= 0:
            return True
        now = self._time_fn()
        with self._lock:
            self._prune_if_due(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=self._capacity, updated_at=now)
                self._buckets[key] = bucket
            self._refill(bucket, now)
            if bucket.tokens < amount:
                return False
            bucket.tokens -= amount
            return True

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _refill(self, bucket: _Bucket, now: float) -> None:
        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(self._capacity, bucket.tokens + elapsed * self._refill_per_sec)
        bucket.updated_at = now

    def _prune_if_due(self, now: float) -> None:
        if now - self._last_prune < self._prune_interval_sec:
            return
        self._last_prune = now
        full = []
        for key, bucket in self._buckets.items():
            self._refill(bucket, now)
            if bucket.tokens >= self._capacity:
                full.append(key)
        for key in full:
            del self._buckets[key]


__all__ = ["KeyedRateLimiter"]
