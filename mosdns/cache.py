"""The interface of cache backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import NamedTuple


class CacheItem(NamedTuple):
    """A cached value with its stored and expiration times (epoch seconds)."""

    value: bytes
    stored_time: float
    expiration_time: float


class Backend(ABC):
    """A cache backend.

    Backends do not raise on cache failures: a cache error is not fatal to
    a query, so implementations handle errors themselves. Operations are
    expected to finish quickly.
    """

    @abstractmethod
    def get(self, key: str) -> CacheItem | None:
        """Return the item stored under key, or None."""

    @abstractmethod
    def store(
        self, key: str, value: bytes, stored_time: float, expiration_time: float
    ) -> None:
        """Store a copy of value. A no-op if expiration_time has passed."""

    @abstractmethod
    def __len__(self) -> int:
        """Return the number of stored items."""

    @abstractmethod
    def close(self) -> None:
        """Close the backend; get and store become no-ops."""