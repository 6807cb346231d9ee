"""A size-bounded least-recently-used map."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any, Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

EvictCallback = Callable[[Any, Any], None]


class LRU(Generic[K, V]):
    """A map that evicts its least recently used entries beyond max_size.

    on_evict, if given, is called with (key, value) for every entry that is
    evicted, deleted or cleaned; it is not called for pop_oldest.
    """

    def __init__(self, max_size: int, on_evict: EvictCallback | None = None) -> None:
        if max_size <= 0:
            raise ValueError(f"LRU: invalid max size: {max_size}")
        self._max_size = max_size
        self._on_evict = on_evict
        self._items: OrderedDict[K, V] = OrderedDict()

    def add(self, key: K, value: V) -> None:
        """Insert or update key, marking it as most recently used."""
        if key in self._items:
            self._items[key] = value
            self._items.move_to_end(key)
            return
        while len(self._items) >= self._max_size:
            old_key, old_value = self._items.popitem(last=False)
            if self._on_evict is not None:
                self._on_evict(old_key, old_value)
        self._items[key] = value

    def delete(self, key: K) -> None:
        """Remove key if present."""
        if key in self._items:
            value = self._items.pop(key)
            if self._on_evict is not None:
                self._on_evict(key, value)

    def pop_oldest(self) -> tuple[K, V]:
        """Remove and return the least recently used (key, value).

        Raises KeyError if the LRU is empty.
        """
        if not self._items:
            raise KeyError("pop_oldest from an empty LRU")
        return self._items.popitem(last=False)

    def clean(self, predicate: Callable[[K, V], bool]) -> int:
        """Remove every entry for which predicate(key, value) is true.

        Returns the number of removed entries.
        """
        removed = 0
        for key, value in list(self._items.items()):
            if predicate(key, value):
                del self._items[key]
                if self._on_evict is not None:
                    self._on_evict(key, value)
                removed += 1
        return removed

    def get(self, key: K, default: Any = None) -> V | Any:
        """Return the value for key and mark it recently used, else default."""
        if key not in self._items:
            return default
        self._items.move_to_end(key)
        return self._items[key]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)