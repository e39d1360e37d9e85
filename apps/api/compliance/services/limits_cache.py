"""In-memory cache for HUD income-limit tables."""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Dict, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


@dataclass
class _CacheEntry(Generic[V]):
    value: V
    stored_at: float


class LimitsCache(Generic[V]):
    """Small keyed cache with TTL eviction and an injectable clock."""

    def __init__(self, ttl_seconds: float = 86_400, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, _CacheEntry[V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        self._evict_expired()
        entry = self._entries.get(key)
        if not entry:
            return None
        return entry.value

    def set(self, key: Hashable, value: V) -> None:
        self._evict_expired()
        self._entries[key] = _CacheEntry(value=value, stored_at=self._clock())

    def clear(self, key: Hashable | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.stored_at >= self._ttl]
        for key in expired:
            self._entries.pop(key, None)
