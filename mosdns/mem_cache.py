"""An in-memory LRU cache backend."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from .cache import Backend, CacheItem
from .concurrent_lru import ShardedLRU

_SHARD_COUNT = 64
_MIN_SIZE_PER_SHARD = 16
DEFAULT_CLEANER_INTERVAL = 60.0


@dataclass(slots=True, frozen=True)
class _Entry:
    value: bytes
    stored_time: float
    expiration_time: float


class MemCache(Backend):
    """A thread-safe LRU cache held in memory.

    Each of the 64 shards holds at least 16 entries, so the effective
    minimum size is 1024. A background thread discards expired entries
    every cleaner_interval seconds (60s when cleaner_interval <= 0).
    """

    def __init__(self, size: int, cleaner_interval: float = 0.0) -> None:
        per_shard = max(size // _SHARD_COUNT, _MIN_SIZE_PER_SHARD)
        self._lru = ShardedLRU(_SHARD_COUNT, per_shard)
        self._closed = threading.Event()
        interval = cleaner_interval if cleaner_interval > 0 else DEFAULT_CLEANER_INTERVAL
        self._cleaner = threading.Thread(
            target=self._cleaner_loop, args=(interval,), name="mem-cache-cleaner", daemon=True
        )
        self._cleaner.start()

    def _cleaner_loop(self, interval: float) -> None:
        while not self._closed.wait(interval):
            self.clean_expired()

    def close(self) -> None:
        """Close the cache and stop its cleaner."""
        self._closed.set()

    def get(self, key: str) -> CacheItem | None:
        if self._closed.is_set():
            return None
        entry = self._lru.get(key)
        if entry is None:
            return None
        return CacheItem(entry.value, entry.stored_time, entry.expiration_time)

    def store(
        self, key: str, value: bytes, stored_time: float, expiration_time: float
    ) -> None:
        if self._closed.is_set():
            return
        if time.time() > expiration_time:
            return
        self._lru.add(key, _Entry(bytes(value), stored_time, expiration_time))

    def clean_expired(self, now: float | None = None) -> int:
        """Remove entries that expired before now; return how many."""
        if now is None:
            now = time.time()
        return self._lru.clean(lambda _key, entry: entry.expiration_time < now)

    def __len__(self) -> int:
        return len(self._lru)

    def __enter__(self) -> MemCache:
        return self

    def __exit__(self, *args) -> None:
        self.close()