from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Small thread-safe memo for lookups that may go slightly stale."""

    def __init__(self, ttl_s: float) -> None:
        self.ttl_s = max(0.0, float(ttl_s))
        self._data: dict[Hashable, tuple[float, V]] = {}
        self._lock = threading.Lock()

    def get_or_set(self, key: Hashable, fn: Callable[[], V]) -> V:
        with self._lock:
            entry = self._data.get(key)
            if entry is not None and entry[0] > time.monotonic():
                return entry[1]

        value = fn()
        with self._lock:
            self._data[key] = (time.monotonic() + self.ttl_s, value)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        with self._lock:
            if key is None:
                self._data.clear()
            else:
                self._data.pop(key, None)
