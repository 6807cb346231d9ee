"""Thread-safe LRU maps, plain and sharded."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from typing import Any

from .lru import LRU, EvictCallback


class ConcurrentLRU:
    """An LRU guarded by a lock."""

    def __init__(self, max_size: int, on_evict: EvictCallback | None = None) -> None:
        self._lock = threading.Lock()
        self._lru: LRU[Any, Any] = LRU(max_size, on_evict)

    def add(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._lru.add(key, value)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._lru.delete(key)

    def clean(self, predicate: Callable[[Any, Any], bool]) -> int:
        """Remove entries matching predicate; return how many were removed."""
        with self._lock:
            return self._lru.clean(predicate)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._lru.get(key, default)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._lru

    def __len__(self) -> int:
        with self._lock:
            return len(self._lru)


class ShardedLRU:
    """A set of ConcurrentLRU shards selected by key hash."""

    def __init__(
        self,
        shard_num: int,
        max_size_per_shard: int,
        on_evict: EvictCallback | None = None,
    ) -> None:
        if shard_num <= 0:
            raise ValueError(f"invalid shard number: {shard_num}")
        self._shards = [
            ConcurrentLRU(max_size_per_shard, on_evict) for _ in range(shard_num)
        ]

    def _shard(self, key: Hashable) -> ConcurrentLRU:
        return self._shards[hash(key) % len(self._shards)]

    def add(self, key: Hashable, value: Any) -> None:
        self._shard(key).add(key, value)

    def delete(self, key: Hashable) -> None:
        self._shard(key).delete(key)

    def clean(self, predicate: Callable[[Any, Any], bool]) -> int:
        """Remove entries matching predicate in every shard; return the count."""
        return sum(shard.clean(predicate) for shard in self._shards)

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._shard(key).get(key, default)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, Hashable) and key in self._shard(key)

    def __len__(self) -> int:
        return sum(len(shard) for shard in self._shards)