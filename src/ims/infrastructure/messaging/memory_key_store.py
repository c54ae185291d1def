"""Process-local KeyStore for single-process deployments and tests.

Expired keys are evicted on every write, oldest deadline first, so the
store holds at most the keys added within the last TTL.
"""

from __future__ import annotations

import heapq
import threading
import time
from collections.abc import Callable

from ims.application.idempotency import KeyStore


class InMemoryKeyStore(KeyStore):

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expiry: dict[str, float] = {}
        self._deadlines: list[tuple[float, str]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiry)

    def add_if_absent(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            self._evict(now)
            if key in self._expiry:
                return False
            expires = now + ttl_seconds
            self._expiry[key] = expires
            heapq.heappush(self._deadlines, (expires, key))
            return True

    def contains(self, key: str) -> bool:
        with self._lock:
            self._evict(self._clock())
            return key in self._expiry

    def _evict(self, now: float) -> None:
        while self._deadlines and self._deadlines[0][0] <= now:
            expires, key = heapq.heappop(self._deadlines)
            # a re-added key leaves a stale deadline behind
            if self._expiry.get(key) == expires:
                del self._expiry[key]
