# src/mq_planner/api/cache.py
"""Per-process read-through cache for the read endpoints.

Keyed by (endpoint, params). Entries live for PREVIEW_CACHE_TTL_SEC seconds
and every queue write drops the whole cache.
"""
from __future__ import annotations

import os
import time
from copy import deepcopy
from threading import Lock
from typing import Any, Callable, Hashable

_CACHE_MAX = 64


def _ttl_from_env() -> float:
    raw = os.getenv("PREVIEW_CACHE_TTL_SEC", "30")
    try:
        return max(float(raw), 0.0)
    except (TypeError, ValueError):
        return 30.0


class ReadThroughCache:
    def __init__(self, ttl_sec: float | None = None, max_entries: int = _CACHE_MAX):
        self.ttl_sec = _ttl_from_env() if ttl_sec is None else float(ttl_sec)
        self.max_entries = max_entries
        self._data: dict[tuple, tuple[float, Any]] = {}
        self._lock = Lock()
        # bumped by invalidate; a compute that straddles a bump is not stored
        self._generation = 0

    def get_or_compute(self, endpoint: str, params: Hashable, compute: Callable[[], Any]) -> Any:
        if self.ttl_sec <= 0:
            return compute()
        key = (endpoint, params)
        now = time.monotonic()
        with self._lock:
            hit = self._data.get(key)
            if hit is not None and now - hit[0] < self.ttl_sec:
                return deepcopy(hit[1])
            generation = self._generation
        value = compute()
        with self._lock:
            if generation != self._generation:
                return value
            if len(self._data) >= self.max_entries:
                oldest = min(self._data, key=lambda k: self._data[k][0])
                self._data.pop(oldest, None)
            self._data[key] = (now, deepcopy(value))
        return value

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


cache = ReadThroughCache()
