from __future__ import annotations

import threading
import time
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class TtlCache(Generic[T]):
    """Key -> (value, captured_at) store with a fixed time-to-live.

    Reads never evict. Every write sweeps entries aged ``2 * ttl`` or more, so
    a stale entry survives until the next write but the map cannot grow
    without bound when keys change.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[T, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        value, captured_at = entry
        if self._clock() - captured_at < self.ttl:
            return value
        return None

    def set(self, key: str, value: T) -> None:
        now = self._clock()
        horizon = self.ttl * 2
        with self._lock:
            self._entries[key] = (value, now)
            self._entries = {
                k: entry
                for k, entry in self._entries.items()
                if now - entry[1] < horizon
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
